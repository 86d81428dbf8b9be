"""Admin-gated HTTP control surface: code redemption and log viewing."""

import logging
import threading
from functools import wraps

from flask import Flask, Response, request
from werkzeug.serving import make_server

log = logging.getLogger(__name__)

MISSING_CODE = "you must enter a code"
UNAUTHORIZED = "unauthorized"


def _text(body, status=200):
    return Response(body, status=status, mimetype="text/plain")


def create_app(authenticator, sink, admin_ips=()):
    """Build the Flask app around a StepUpAuthenticator and a LogSink."""
    app = Flask(__name__)
    admin_ips = frozenset(admin_ips)

    def has_api_access():
        if not admin_ips:
            return True
        return request.remote_addr in admin_ips

    def admin_only(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not has_api_access():
                log.warning(
                    "Unauthorized API attempt [%s] from: %s",
                    request.path,
                    request.remote_addr,
                )
                return _text(UNAUTHORIZED, status=403)
            return view(*args, **kwargs)

        return wrapped

    @app.route("/api/authenticate", methods=["GET", "POST"])
    @admin_only
    def authenticate():
        code = request.values.get("code", "")
        if not code:
            return _text(MISSING_CODE)
        return _text(authenticator.redeem(code))

    @app.route("/api/log")
    @admin_only
    def view_log():
        return _text(sink.contents())

    return app


class ControlServer:
    """Threaded werkzeug server running the control app in the background."""

    def __init__(self, app, host, port):
        self._server = make_server(host or "0.0.0.0", port, app, threaded=True)
        self._thread = None

    @property
    def port(self):
        return self._server.server_port

    def start(self):
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="control-server", daemon=True
        )
        self._thread.start()
        log.info("Control server listening on %s:%d", self._server.host, self.port)
        return self._thread

    def shutdown(self):
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
