"""Test configuration."""
import threading

import pytest

from allowlist import AllowList
from log_sink import LogSink
from mailer import build_message
from stepup import StepUpAuthenticator


class FakeMailer:
    """Records sent batches instead of talking SMTP."""

    def __init__(self, error=None):
        self.batches = []
        self.error = error
        self.sent = threading.Event()

    def compose(self, recipient, subject, body):
        return build_message("gatekeeper@test", recipient, subject, body)

    def send(self, messages):
        try:
            if self.error is not None:
                raise self.error
            self.batches.append(list(messages))
        finally:
            self.sent.set()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def allowlist_path(tmp_path):
    return str(tmp_path / "whitelist.json")


@pytest.fixture
def allowlist(allowlist_path):
    return AllowList.load(allowlist_path)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def authenticator(allowlist, mailer):
    return StepUpAuthenticator(
        allowlist,
        mailer,
        recipients=["ops@example.com"],
        api_url="http://gate.example:8080/api",
    )


@pytest.fixture
def sink(tmp_path):
    sink = LogSink(str(tmp_path / "gatekeeper.log"), stream=_NullStream())
    yield sink
    sink.close()


class _NullStream:
    def write(self, text):
        return len(text)

    def flush(self):
        pass
