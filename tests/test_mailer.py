import smtplib

import pytest

from errors import DeliveryError
from mailer import Mailer
from settings import SmtpSettings


class FakeSMTP:
    instances = []
    fail_on_send = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls.append("quit")
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user, password))

    def send_message(self, message):
        if FakeSMTP.fail_on_send:
            raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no")})
        self.sent.append(message)


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_on_send = False
    monkeypatch.setattr("mailer.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def test_batch_goes_through_one_tls_session():
    mailer = Mailer.from_settings(
        SmtpSettings(host="smtp.example.com", port=2525, username="u", password="p", sender="gate@example.com")
    )
    messages = [mailer.compose(r, "subject", "body") for r in ("a@example.com", "b@example.com")]
    mailer.send(messages)

    (session,) = FakeSMTP.instances
    assert (session.host, session.port) == ("smtp.example.com", 2525)
    assert session.calls.index("starttls") < session.calls.index(("login", "u", "p"))
    assert [m["To"] for m in session.sent] == ["a@example.com", "b@example.com"]
    assert session.sent[0]["From"] == "gate@example.com"


def test_login_skipped_without_credentials():
    mailer = Mailer("localhost")
    mailer.send([mailer.compose("a@example.com", "s", "b")])
    assert not any(isinstance(c, tuple) for c in FakeSMTP.instances[0].calls)


def test_empty_batch_does_not_connect():
    Mailer("localhost").send([])
    assert FakeSMTP.instances == []


def test_smtp_failure_raises_delivery_error():
    FakeSMTP.fail_on_send = True
    mailer = Mailer("localhost")
    with pytest.raises(DeliveryError):
        mailer.send([mailer.compose("a@example.com", "s", "b")])


def test_connection_failure_raises_delivery_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr("mailer.smtplib.SMTP", refuse)
    with pytest.raises(DeliveryError):
        Mailer("localhost").send([Mailer("localhost").compose("a@example.com", "s", "b")])
