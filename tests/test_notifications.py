"""Tests for notification channels and the aggregate sender."""
import pytest
from unittest.mock import patch, MagicMock

import requests

from alerts.channels import NotificationSender, TelegramChannel, EmailChannel
from models.alerts import NotificationChannel


class FlakyChannel:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, rule_name, details, severity, config):
        if self.fail:
            raise RuntimeError("delivery failed")
        self.sent.append((rule_name, details, severity, config))


def test_sender_aggregates_results():
    ok, bad = FlakyChannel(), FlakyChannel(fail=True)
    sender = NotificationSender(handlers={"email": ok, "telegram": bad})
    result = sender.send("High CPU", "cpu 95%", "critical", [
        {"name": "mail", "type": "email", "config": {"email": "ops@example.com"}},
        {"name": "tg", "type": "telegram", "config": {}},
    ])
    assert result["results"] == [
        {"channel": "mail", "type": "email", "success": True},
        {"channel": "tg", "type": "telegram", "success": False, "error": "delivery failed"},
    ]
    assert ok.sent == [("High CPU", "cpu 95%", "critical", {"email": "ops@example.com"})]


def test_sender_unknown_type():
    sender = NotificationSender(handlers={})
    result = sender.send("r", "d", "info", [{"name": "hook", "type": "webhook", "config": {}}])
    assert result["results"][0]["success"] is False
    assert "Unsupported channel type" in result["results"][0]["error"]


def test_sender_empty_channels():
    assert NotificationSender(handlers={}).send("r", "d", "info", []) == {"results": []}


def test_send_test_uses_channel():
    ok = FlakyChannel()
    sender = NotificationSender(handlers={"email": ok})
    channel = NotificationChannel(id="c1", name="mail", type="email", config={"email": "a@b.com"})
    result = sender.send_test(channel)
    assert result["results"][0]["success"] is True
    assert ok.sent[0][0] == "Test Notification"


# ── Telegram ───────────────────────────────────────────

def test_telegram_channel_requires_config():
    with pytest.raises(ValueError):
        TelegramChannel().send("r", "d", "info", {"chatId": "1"})


@patch("notifications.telegram_bot.requests.post")
def test_telegram_channel_posts(mock_post):
    mock_post.return_value = MagicMock(json=MagicMock(return_value={"ok": True}))
    TelegramChannel().send("Backends <down>", "a & b", "critical", {"botToken": "T", "chatId": "99"})

    url = mock_post.call_args[0][0]
    payload = mock_post.call_args.kwargs["json"]
    assert url == "https://api.telegram.org/botT/sendMessage"
    assert payload["chat_id"] == "99"
    assert payload["parse_mode"] == "HTML"
    assert "Backends &lt;down&gt;" in payload["text"]
    assert "a &amp; b" in payload["text"]
    assert "CRITICAL" in payload["text"]


@patch("notifications.telegram_bot.requests.post")
def test_telegram_channel_api_rejection(mock_post):
    mock_post.return_value = MagicMock(json=MagicMock(return_value={"ok": False, "description": "chat not found"}))
    with pytest.raises(RuntimeError, match="chat not found"):
        TelegramChannel().send("r", "d", "info", {"botToken": "T", "chatId": "1"})


@patch("notifications.telegram_bot.requests.post", side_effect=requests.ConnectionError("down"))
def test_telegram_failure_reported_by_sender(mock_post):
    sender = NotificationSender(handlers={"telegram": TelegramChannel()})
    result = sender.send("r", "d", "info", [{"name": "tg", "type": "telegram",
                                             "config": {"botToken": "T", "chatId": "1"}}])
    assert result["results"][0]["success"] is False


# ── Email ──────────────────────────────────────────────

SMTP_CONFIG = {"email": {
    "smtp_host": "smtp.test.com",
    "from_address": "proxy@test.com",
    "smtp_username": "u",
    "smtp_password": "p",
}}


def test_email_channel_requires_recipient():
    with pytest.raises(ValueError):
        EmailChannel(SMTP_CONFIG).send("r", "d", "info", {})


@patch("notifications.email_sender.smtplib.SMTP")
def test_email_channel_sends(mock_smtp_class):
    mock_server = MagicMock()
    mock_smtp_class.return_value.__enter__ = MagicMock(return_value=mock_server)
    mock_smtp_class.return_value.__exit__ = MagicMock(return_value=False)

    EmailChannel(SMTP_CONFIG).send("Disk full", "disk 97%", "warning", {"email": "ops@example.com"})
    msg = mock_server.send_message.call_args[0][0]
    assert msg["To"] == "ops@example.com"
    assert msg["Subject"] == "[WARNING] proxywatch: Disk full"


def test_email_channel_unconfigured_raises():
    with patch.dict("os.environ", {}, clear=True):
        channel = EmailChannel({"email": {}})
        with pytest.raises(RuntimeError):
            channel.send("r", "d", "info", {"email": "ops@example.com"})


# ── Verification ───────────────────────────────────────

@patch("notifications.telegram_bot.requests.get")
def test_telegram_verify_calls_get_me(mock_get):
    mock_get.return_value = MagicMock(json=MagicMock(
        return_value={"ok": True, "result": {"username": "proxybot"}}))
    message = TelegramChannel().verify({"botToken": "T", "chatId": "1"})
    assert mock_get.call_args[0][0] == "https://api.telegram.org/botT/getMe"
    assert message == "Bot @proxybot is reachable"


def test_telegram_verify_requires_token():
    with pytest.raises(ValueError):
        TelegramChannel().verify({"chatId": "1"})


@patch("notifications.email_sender.smtplib.SMTP")
def test_email_verify_logs_in(mock_smtp_class):
    mock_server = MagicMock()
    mock_smtp_class.return_value.__enter__ = MagicMock(return_value=mock_server)
    mock_smtp_class.return_value.__exit__ = MagicMock(return_value=False)

    assert "smtp.test.com" in EmailChannel(SMTP_CONFIG).verify({"email": "ops@example.com"})
    mock_server.login.assert_called_once_with("u", "p")
    mock_server.send_message.assert_not_called()


@patch("notifications.email_sender.smtplib.SMTP", side_effect=OSError("unreachable"))
def test_sender_verify_reports_failure(mock_smtp_class):
    sender = NotificationSender(SMTP_CONFIG)
    channel = NotificationChannel(id="c1", name="mail", type="email", config={"email": "a@b.com"})
    result = sender.verify(channel)
    assert result == {"channel": "mail", "type": "email", "success": False, "error": "unreachable"}


def test_sender_verify_unknown_type():
    channel = NotificationChannel(id="c1", name="hook", type="webhook")
    result = NotificationSender(handlers={}).verify(channel)
    assert result["success"] is False
    assert "Unsupported channel type" in result["error"]
