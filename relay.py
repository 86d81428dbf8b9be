"""
Bidirectional byte relay between two asyncio stream pairs.

A relay copies ``left -> right`` on a spawned task and ``right -> left`` on
the caller's task. Whichever direction ends first (EOF, socket error or an
explicit ``stop()``) marks the relay terminated. A clean EOF is passed on as a
half-close so a reply already under way still reaches the caller; a socket
error closes the destination outright. Full teardown is left to the owner of
the connections once ``start()`` returns.
"""

import asyncio
import logging

log = logging.getLogger(__name__)

BUFFER_SIZE = 2048

IDLE = "idle"
PIPING = "piping"
TERMINATED = "terminated"


class Relay:
    """Pipe bytes between two connected ``(reader, writer)`` pairs."""

    def __init__(self, left, right):
        self.left_reader, self.left_writer = left
        self.right_reader, self.right_writer = right
        self.state = IDLE
        self._task = None

    @property
    def alive(self):
        return self.state == PIPING

    async def start(self):
        """Relay in both directions; return once the right -> left side ends."""
        if self.state != IDLE:
            raise RuntimeError(f"relay cannot start from state {self.state!r}")
        self.state = PIPING
        self._task = asyncio.create_task(
            self._pipe(self.left_reader, self.right_writer)
        )
        await self._pipe(self.right_reader, self.left_writer)

    def stop(self):
        """Mark the relay terminated. Does not close either connection."""
        self.state = TERMINATED

    async def wait_stopped(self):
        """Wait for the spawned left -> right task to finish."""
        if self._task is not None:
            await self._task

    async def _pipe(self, reader, writer):
        """Forward data from *reader* to *writer* while the relay is alive."""
        try:
            while self.state == PIPING:
                data = await reader.read(BUFFER_SIZE)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except (ConnectionError, OSError) as exc:
            log.debug("Relay direction ended with %s", exc)
            writer.close()
        else:
            # Half-close only: the peer may still be answering the other way.
            if writer.can_write_eof():
                try:
                    writer.write_eof()
                except (ConnectionError, OSError):
                    writer.close()
        finally:
            self.state = TERMINATED
