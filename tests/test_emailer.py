import smtplib
from pathlib import Path

import pytest

import recipkit.emailer as emailer
from recipkit.config import Config
from recipkit.errors import SendError
from recipkit.models import MailMessage


class DummySMTP:
    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.logged_in = False
        self.sent = False
        self.msg = None
        self.envelope = None
        self.rejected = set()
        self.rcpts = []
        self.fail_with = None

    def login(self, user, password):
        self.logged_in = True

    def send_message(self, msg, from_addr=None, to_addrs=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent = True
        self.msg = msg
        self.envelope = (from_addr, list(to_addrs))
        return {}

    def mail(self, sender):
        return 250, b"ok"

    def rcpt(self, address):
        self.rcpts.append(address)
        if address in self.rejected:
            return 550, b"no such user"
        return 250, b"ok"

    def rset(self):
        return 250, b"ok"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def _config(**overrides):
    values = {
        "host": "smtp.example.com",
        "port": 465,
        "user": "user",
        "password": "pass",
        "sender": "noreply@example.com",
    }
    values.update(overrides)
    return Config(**values)


def _patch_smtp(monkeypatch, **attrs):
    dummy = {}

    def fake_smtp(host, port, timeout=None):
        smtp = DummySMTP(host, port, timeout)
        for key, value in attrs.items():
            setattr(smtp, key, value)
        dummy["smtp"] = smtp
        return smtp

    monkeypatch.setattr(smtplib, "SMTP_SSL", fake_smtp)
    return dummy


def test_build_message_from_header_uses_display_name():
    message = MailMessage(sender="noreply@example.com", display_name="Jenkins CI", to=["a@x.com"])
    msg = emailer.build_message(message)
    assert str(msg["From"]) == "Jenkins CI <noreply@example.com>"

    message = MailMessage(sender="dev.devops@example.com", to=["a@x.com"])
    msg = emailer.build_message(message)
    assert str(msg["From"]) == "dev.devops@example.com"


def test_build_message_headers_and_html_body():
    message = MailMessage(
        sender="noreply@example.com",
        to=["a@x.com", "b@x.com"],
        cc=["c@x.com"],
        subject="Nightly",
        body="<p>done</p>",
        content_type="text/html",
    )
    msg = emailer.build_message(message)
    assert str(msg["To"]) == "a@x.com, b@x.com"
    assert str(msg["Cc"]) == "c@x.com"
    assert str(msg["Subject"]) == "Nightly"
    assert msg.get_content_type() == "text/html"
    assert "<p>done</p>" in msg.get_content()


def test_build_message_adds_attachments(tmp_path):
    report = tmp_path / "report.txt"
    report.write_text("all green")
    blob = tmp_path / "dump.bin"
    blob.write_bytes(b"\x00\x01")

    message = MailMessage(
        sender="noreply@example.com",
        to=["a@x.com"],
        body="see attached",
        attachments=[report, blob],
    )
    msg = emailer.build_message(message)
    attachments = list(msg.iter_attachments())
    assert [part.get_filename() for part in attachments] == ["report.txt", "dump.bin"]
    assert attachments[0].get_content_type() == "text/plain"
    assert attachments[1].get_content_type() == "application/octet-stream"


def test_smtp_transport_sends_to_all_recipients(monkeypatch):
    dummy = _patch_smtp(monkeypatch)
    message = MailMessage(
        sender="noreply@example.com",
        to=["a@x.com", "Bob <bob.@x.com>"],
        cc=["c@x.com"],
        subject="s",
        body="b",
    )
    emailer.SmtpTransport(_config()).send(message)

    smtp = dummy["smtp"]
    assert smtp.logged_in is True
    assert smtp.sent is True
    assert smtp.envelope == ("noreply@example.com", ["a@x.com", "bob.@x.com", "c@x.com"])


def test_smtp_transport_wraps_failures(monkeypatch):
    _patch_smtp(
        monkeypatch,
        fail_with=smtplib.SMTPRecipientsRefused({"a@x.com": (550, b"no such user")}),
    )
    message = MailMessage(sender="noreply@example.com", to=["a@x.com"])
    with pytest.raises(SendError, match="send failed"):
        emailer.SmtpTransport(_config()).send(message)


def test_smtp_transport_skips_login_without_user(monkeypatch):
    dummy = _patch_smtp(monkeypatch)
    message = MailMessage(sender="noreply@example.com", to=["a@x.com"])
    emailer.SmtpTransport(_config(user="")).send(message)
    assert dummy["smtp"].logged_in is False


def test_probe_recipients_reports_format_and_rcpt_failures(monkeypatch):
    dummy = _patch_smtp(monkeypatch, rejected={"gone@x.com"})
    suspects = emailer.probe_recipients(
        _config(), ["ok@x.com", "invalid@", "gone@x.com", "Bob <bob.@x.com>"]
    )
    assert suspects == ["invalid@", "gone@x.com"]
    assert dummy["smtp"].rcpts == ["ok@x.com", "gone@x.com", "bob.@x.com"]


def test_probe_recipients_connection_failure_blames_nobody(monkeypatch):
    def refuse(*_args, **_kwargs):
        raise ConnectionRefusedError("no route")

    monkeypatch.setattr(smtplib, "SMTP_SSL", refuse)
    assert emailer.probe_recipients(_config(), ["ok@x.com", "invalid@"]) == ["invalid@"]
