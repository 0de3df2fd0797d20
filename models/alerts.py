"""Dataclasses for alert rules, notification channels and evaluation results."""
from dataclasses import dataclass, field
from typing import Optional

from models.enums import ConditionKind, classify_condition


@dataclass
class NotificationChannel:
    id: str = ""
    name: str = ""
    type: str = "email"
    enabled: bool = True
    config: dict = field(default_factory=dict)

    def to_dispatch(self):
        """Shape handed to the notification sender."""
        return {"name": self.name, "type": self.type, "config": self.config}


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    condition: str = ""
    threshold: float = 0.0
    severity: str = "warning"
    enabled: bool = True
    check_interval: int = 60  # seconds
    channels: list = field(default_factory=list)
    kind: Optional[ConditionKind] = None

    def __post_init__(self):
        # Derived once when the rule is built; the loop never re-parses the text
        if self.kind is None:
            self.kind = classify_condition(self.condition)

    def enabled_channels(self):
        return [c for c in self.channels if c.enabled]


@dataclass
class ConditionEvaluation:
    triggered: bool = False
    details: str = ""
