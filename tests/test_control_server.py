import logging

import pytest

from control_server import MISSING_CODE, UNAUTHORIZED, create_app
from log_sink import install_logging


def _client(authenticator, sink, admin_ips=()):
    app = create_app(authenticator, sink, admin_ips)
    app.testing = True
    return app.test_client()


def test_redeem_via_get(authenticator, allowlist, sink):
    code = authenticator.issue_code("10.0.0.5")
    resp = _client(authenticator, sink).get(f"/api/authenticate?code={code}")
    assert resp.status_code == 200
    assert resp.mimetype == "text/plain"
    assert resp.get_data(as_text=True) == "success"
    assert allowlist.contains("10.0.0.5")


def test_redeem_via_post_form(authenticator, allowlist, sink):
    code = authenticator.issue_code("10.0.0.5")
    resp = _client(authenticator, sink).post("/api/authenticate", data={"code": code})
    assert resp.get_data(as_text=True) == "success"
    assert allowlist.contains("10.0.0.5")


def test_redeem_twice_is_invalid(authenticator, sink):
    code = authenticator.issue_code("10.0.0.5")
    client = _client(authenticator, sink)
    client.get(f"/api/authenticate?code={code}")
    resp = client.get(f"/api/authenticate?code={code}")
    assert resp.get_data(as_text=True) == "invalid code"


def test_missing_code(authenticator, sink):
    resp = _client(authenticator, sink).get("/api/authenticate")
    assert resp.get_data(as_text=True) == MISSING_CODE


def test_redeem_error_is_plain_text(authenticator, allowlist, sink):
    allowlist.add("10.0.0.5")
    code = authenticator.issue_code("10.0.0.5")
    resp = _client(authenticator, sink).get(f"/api/authenticate?code={code}")
    assert resp.get_data(as_text=True).startswith("error: ")


def test_log_returns_sink_contents(authenticator, sink):
    sink.write(b"first line\n")
    sink.write(b"second line\n")
    resp = _client(authenticator, sink).get("/api/log")
    assert resp.status_code == 200
    assert resp.get_data() == b"first line\nsecond line\n"


@pytest.mark.parametrize("path", ["/api/log", "/api/authenticate?code=abc"])
def test_empty_admin_list_admits_anyone(authenticator, sink, path):
    client = _client(authenticator, sink)
    resp = client.get(path, environ_base={"REMOTE_ADDR": "198.51.100.20"})
    assert resp.get_data(as_text=True) != UNAUTHORIZED


@pytest.mark.parametrize("path", ["/api/log", "/api/authenticate?code=abc"])
def test_admin_list_blocks_other_callers(authenticator, sink, path):
    client = _client(authenticator, sink, admin_ips=["192.0.2.10"])

    denied = client.get(path, environ_base={"REMOTE_ADDR": "198.51.100.20"})
    assert denied.status_code == 403
    assert denied.get_data(as_text=True) == UNAUTHORIZED

    allowed = client.get(path, environ_base={"REMOTE_ADDR": "192.0.2.10"})
    assert allowed.get_data(as_text=True) != UNAUTHORIZED


def test_denied_redeem_leaves_code_pending(authenticator, allowlist, sink):
    code = authenticator.issue_code("10.0.0.5")
    client = _client(authenticator, sink, admin_ips=["192.0.2.10"])
    client.get(
        f"/api/authenticate?code={code}", environ_base={"REMOTE_ADDR": "198.51.100.20"}
    )
    assert authenticator.code_ip(code) == "10.0.0.5"
    assert not allowlist.contains("10.0.0.5")


def test_denied_attempt_is_logged(authenticator, sink):
    handler = install_logging(sink)
    try:
        client = _client(authenticator, sink, admin_ips=["192.0.2.10"])
        client.get("/api/log", environ_base={"REMOTE_ADDR": "198.51.100.20"})
    finally:
        logging.getLogger().removeHandler(handler)
    text = sink.contents().decode()
    assert "Unauthorized API attempt [/api/log] from: 198.51.100.20" in text
