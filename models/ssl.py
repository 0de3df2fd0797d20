"""Dataclasses for persisted certificates and issuance-tool output."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from models.enums import SSLStatus


@dataclass
class Certificate:
    id: str = ""
    domain_id: str = ""
    domain_name: str = ""
    auto_renew: bool = True
    issuer: str = ""
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    status: str = SSLStatus.VALID.value

    def days_until_expiry(self, now=None) -> int:
        now = now or datetime.now(timezone.utc)
        return int((self.valid_to - now).total_seconds() // 86400)


@dataclass
class CertificateFiles:
    certificate: str = ""
    private_key: str = ""
    chain: str = ""


@dataclass
class CertificateInfo:
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    issuer: str = ""
    subject: str = ""
