"""Dataclasses for point-in-time host, upstream and certificate facts."""
from dataclasses import dataclass

from models.enums import UpstreamState


@dataclass
class SystemMetrics:
    cpu: float = 0.0
    memory: float = 0.0
    disk: float = 0.0


@dataclass
class UpstreamStatus:
    name: str = ""
    status: UpstreamState = UpstreamState.DOWN

    @property
    def is_down(self) -> bool:
        return self.status == UpstreamState.DOWN


@dataclass
class CertificateExpiry:
    domain: str = ""
    days_remaining: int = 0
