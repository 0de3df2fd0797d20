"""
SMTP email sender for proxywatch alert notifications.

Handles:
  - SMTP connection with STARTTLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

Recipients come from each notification channel; the SMTP server settings are
shared and live in the ``email`` config section.
"""
import os
import ssl
import html
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

logger = logging.getLogger("proxywatch.notifications.email_sender")

SEVERITY_COLORS = {"critical": "#D32F2F", "warning": "#F9A825", "info": "#1976D2"}


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: PROXYWATCH_SMTP_USER, PROXYWATCH_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict):
        email_config = config.get("email", {})
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_address = email_config.get("from_address", "")
        self.from_name = email_config.get("from_name", "proxywatch")

        self.username = os.environ.get(
            "PROXYWATCH_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "PROXYWATCH_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return all([self.smtp_host, self.from_address, self.username, self.password])

    def send_alert(self, to_address: str, rule_name: str, severity: str, details: str) -> bool:
        """Send a single alert email. Returns False instead of raising."""
        if not self.is_configured():
            logger.warning("Email not configured - skipping alert send")
            return False
        if not to_address:
            logger.warning(f"No recipient for alert '{rule_name}'")
            return False

        subject = f"[{severity.upper()}] proxywatch: {rule_name}"
        color = SEVERITY_COLORS.get(severity, SEVERITY_COLORS["info"])
        body_html = html.escape(details).replace("\n", "<br>")

        html_content = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 560px; margin: 0 auto; padding: 20px;">
            <h2 style="margin-top: 0;">Alert: {html.escape(rule_name)}</h2>
            <div style="background: #F5F5F5; padding: 16px; border-left: 4px solid {color};">
                <p style="color: {color}; font-weight: bold; margin-top: 0;">{severity.upper()}</p>
                <p>{body_html}</p>
            </div>
            <p style="color: #757575; font-size: 12px; margin-top: 16px;">proxywatch &mdash; automated alert</p>
        </div>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = to_address
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{severity.upper()}: {rule_name}\n\n{details}", "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        return self._send(msg)

    def test_connection(self) -> dict:
        """Test SMTP connectivity without sending an email."""
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                return {"status": "ok", "message": "SMTP connection successful",
                        "server_response": str(server.noop())}
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except smtplib.SMTPConnectError as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        except Exception as e:
            return {"status": "error", "message": str(e)}

    def _send(self, msg: MIMEMultipart) -> bool:
        """Internal: send a constructed MIME message via SMTP."""
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                server.send_message(msg)
            logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
            return True
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed. Check username/password.")
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"Recipient refused: {msg['To']}")
            return False
        except Exception as e:
            logger.error(f"Email send failed: {e}")
            return False
