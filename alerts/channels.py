"""Alert notification channels and the aggregate sender."""
import html
import logging
from typing import Protocol, runtime_checkable

from models.enums import ChannelType

logger = logging.getLogger("proxywatch.alerts.channels")

_SEVERITY_EMOJI = {
    "critical": "\U0001F6A8",
    "warning": "⚠️",
    "info": "ℹ️",
}


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, rule_name, details, severity, config) -> None: ...

    def verify(self, config) -> str: ...


class EmailChannel:
    """Deliver alerts by email. Channel config: {"email": "<recipient>"}."""

    def __init__(self, config: dict):
        from notifications.email_sender import EmailSender
        self.sender = EmailSender(config)

    def send(self, rule_name, details, severity, config) -> None:
        to_address = (config or {}).get("email")
        if not to_address:
            raise ValueError("email channel has no recipient address")
        if not self.sender.send_alert(to_address, rule_name, severity, details):
            raise RuntimeError(f"email delivery to {to_address} failed")

    def verify(self, config) -> str:
        """Log in to the SMTP server without sending anything."""
        result = self.sender.test_connection()
        if result["status"] != "ok":
            raise RuntimeError(result["message"])
        return f"SMTP login to {self.sender.smtp_host} succeeded"


class TelegramChannel:
    """Deliver alerts via Telegram. Channel config: {"botToken", "chatId"}."""

    def __init__(self, timeout=30):
        self.timeout = timeout

    def format_message(self, rule_name, details, severity):
        emoji = _SEVERITY_EMOJI.get(severity, "")
        return (
            f"{emoji} <b>Alert [{severity.upper()}]</b>\n"
            f"<b>{html.escape(rule_name)}</b>\n\n"
            f"{html.escape(details)}"
        )

    def send(self, rule_name, details, severity, config) -> None:
        from notifications.telegram_bot import TelegramBot

        config = config or {}
        token, chat_id = config.get("botToken"), config.get("chatId")
        if not token or not chat_id:
            raise ValueError("telegram channel needs botToken and chatId")

        bot = TelegramBot(token, chat_id, timeout=self.timeout)
        data = bot.send_message(self.format_message(rule_name, details, severity))
        if not data.get("ok"):
            raise RuntimeError(data.get("description") or "Telegram API rejected the message")

    def verify(self, config) -> str:
        """Check the bot token with getMe."""
        from notifications.telegram_bot import TelegramBot

        token = (config or {}).get("botToken")
        if not token:
            raise ValueError("telegram channel needs botToken")
        data = TelegramBot(token, (config or {}).get("chatId", ""), timeout=self.timeout).verify_token()
        if not data.get("ok"):
            raise RuntimeError(data.get("description") or "Telegram rejected the bot token")
        username = data.get("result", {}).get("username", "?")
        return f"Bot @{username} is reachable"


class NotificationSender:
    """Fan an alert out to a rule's channels.

    Never raises for a single channel: each outcome is collected into the
    returned ``{"results": [...]}``.
    """

    def __init__(self, config=None, handlers=None):
        config = config or {}
        self.handlers = handlers or {
            ChannelType.EMAIL.value: EmailChannel(config),
            ChannelType.TELEGRAM.value: TelegramChannel(config.get("telegram", {}).get("timeout", 30)),
        }

    def send(self, rule_name, details, severity, channels) -> dict:
        results = []
        for channel in channels:
            name = channel.get("name", "")
            ctype = getattr(channel.get("type"), "value", channel.get("type"))
            handler = self.handlers.get(ctype)
            if handler is None:
                results.append({"channel": name, "type": ctype, "success": False,
                                "error": f"Unsupported channel type: {ctype}"})
                continue
            try:
                handler.send(rule_name, details, severity, channel.get("config"))
                results.append({"channel": name, "type": ctype, "success": True})
            except Exception as e:
                logger.warning(f"Channel '{name}' ({ctype}) dispatch error: {e}")
                results.append({"channel": name, "type": ctype, "success": False, "error": str(e)})
        return {"results": results}

    def send_test(self, channel) -> dict:
        """Send a fixed test notification through one channel."""
        return self.send(
            "Test Notification",
            "This is a test notification from proxywatch. Your channel is configured correctly.",
            "info",
            [channel.to_dispatch()],
        )

    def verify(self, channel) -> dict:
        """Check a channel's credentials without delivering an alert."""
        ctype = getattr(channel.type, "value", channel.type)
        handler = self.handlers.get(ctype)
        if handler is None:
            return {"channel": channel.name, "type": ctype, "success": False,
                    "error": f"Unsupported channel type: {ctype}"}
        try:
            message = handler.verify(channel.config)
        except Exception as e:
            logger.warning(f"Channel '{channel.name}' ({ctype}) verification failed: {e}")
            return {"channel": channel.name, "type": ctype, "success": False, "error": str(e)}
        return {"channel": channel.name, "type": ctype, "success": True, "message": message}
