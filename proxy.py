"""
Gated TCP proxy: relays authorized callers to a fixed backend.

Every inbound connection is checked against the step-up authenticator by the
caller's IP. Rejected callers are disconnected immediately; accepted callers
get a fresh backend connection and a :class:`relay.Relay` between the two.
"""

import asyncio
import logging
import threading

from errors import ConnectivityError
from relay import Relay

log = logging.getLogger(__name__)

DIAL_TIMEOUT = 10


def peer_ip(writer):
    """Address part of the connection's remote endpoint, without the port."""
    peer = writer.get_extra_info("peername")
    if not peer:
        return ""
    return peer[0]


def _endpoint(writer):
    peer = writer.get_extra_info("peername")
    if not peer:
        return "?"
    host, port = peer[0], peer[1]
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


async def _close(writer):
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass


class ProxyServer:
    def __init__(self, address, redirect, authenticator):
        self.host, self.port = address
        self.redirect_host, self.redirect_port = redirect
        self.auth = authenticator
        self.connections = {}  # inbound writer -> Relay
        self._lock = threading.Lock()
        self._server = None

    def active_connections(self):
        """``host:port`` of every inbound connection currently being relayed."""
        with self._lock:
            return [_endpoint(w) for w in self.connections]

    async def dial_backend(self):
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(
                    self.redirect_host or "127.0.0.1", self.redirect_port
                ),
                timeout=DIAL_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise ConnectivityError(
                f"cannot reach backend {self.redirect_host}:{self.redirect_port}: {exc}"
            ) from exc

    async def handle(self, reader, writer):
        """Authorize one inbound connection and relay it if allowed."""
        ip = peer_ip(writer)
        # verdict can block on the authenticator lock during an allow-list save.
        allowed = await asyncio.to_thread(self.auth.verdict, ip)
        if not allowed:
            log.info("Connection dialed from %s - IP not authenticated!", ip)
            await _close(writer)
            return
        log.info("Connection dialed from %s - IP authenticated!", ip)

        try:
            backend_reader, backend_writer = await self.dial_backend()
        except ConnectivityError as exc:
            log.error("Dropping connection from %s: %s", ip, exc)
            await _close(writer)
            return

        relay = Relay((reader, writer), (backend_reader, backend_writer))
        with self._lock:
            self.connections[writer] = relay
        try:
            await relay.start()
        finally:
            relay.stop()
            await _close(writer)
            await _close(backend_writer)
            await relay.wait_stopped()
            with self._lock:
                self.connections.pop(writer, None)
            log.info("Connection from %s closed", ip)

    async def start(self):
        self._server = await asyncio.start_server(
            self.handle, self.host or None, self.port
        )
        self.port = self._server.sockets[0].getsockname()[1]
        log.info(
            "Proxy listening on %s:%d -> %s:%d",
            self.host or "*",
            self.port,
            self.redirect_host or "127.0.0.1",
            self.redirect_port,
        )
        return self._server

    async def serve_forever(self):
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def close(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
