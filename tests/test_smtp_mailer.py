import smtplib

import pytest

from flatwatch.integrations import smtp as smtp_mod
from flatwatch.integrations.base import EmailMessageSpec
from flatwatch.integrations.smtp import SmtpMailer


class _FakeSMTP:
    instances: list["_FakeSMTP"] = []

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls: list[str] = []
        self.sent = []
        _FakeSMTP.instances.append(self)

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
        self.calls.append(f"login:{user}")

    def send_message(self, msg):
        self.sent.append(msg)


class _RefusingSMTP(_FakeSMTP):
    def send_message(self, msg):
        raise smtplib.SMTPRecipientsRefused({msg["To"]: (550, b"no such user")})


def _spec() -> EmailMessageSpec:
    return EmailMessageSpec(to="me@example.com", subject="hello", html="<p>hi</p>", text="hi")


def test_message_has_text_and_html_parts():
    mailer = SmtpMailer(host="smtp.test", from_addr="noreply@example.com", from_name="Flat Tracker")
    msg = mailer.build_message(_spec())

    assert msg["Subject"] == "hello"
    assert msg["To"] == "me@example.com"
    assert "noreply@example.com" in msg["From"]
    types = [part.get_content_type() for part in msg.iter_parts()]
    assert types == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_starttls_login_and_send(monkeypatch):
    _FakeSMTP.instances = []
    monkeypatch.setattr(smtp_mod.smtplib, "SMTP", _FakeSMTP)
    mailer = SmtpMailer(host="smtp.test", port=587, username="bot", password="pw", encryption="tls", from_addr="a@b.c")

    result = await mailer.send(_spec())

    assert result.ok is True
    conn = _FakeSMTP.instances[-1]
    assert (conn.host, conn.port, conn.timeout) == ("smtp.test", 587, 30.0)
    assert conn.calls == ["ehlo", "starttls", "ehlo", "login:bot", "quit"]
    assert len(conn.sent) == 1


@pytest.mark.asyncio
async def test_refused_recipient_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr(smtp_mod.smtplib, "SMTP", _RefusingSMTP)
    mailer = SmtpMailer(host="smtp.test", encryption="none", from_addr="a@b.c")

    result = await mailer.send(_spec())

    assert result.ok is False
    assert "SMTPRecipientsRefused" in result.error


@pytest.mark.asyncio
async def test_missing_host_fails_without_connecting(monkeypatch):
    _FakeSMTP.instances = []
    monkeypatch.setattr(smtp_mod.smtplib, "SMTP", _FakeSMTP)

    result = await SmtpMailer(host=None, from_addr="a@b.c").send(_spec())

    assert result.ok is False
    assert "SMTP_HOST" in result.error
    assert _FakeSMTP.instances == []
