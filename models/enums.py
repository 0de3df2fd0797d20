"""Enums for severity, channel types, certificate state and condition kinds."""
from enum import Enum


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ChannelType(str, Enum):
    EMAIL = "email"
    TELEGRAM = "telegram"


class SSLStatus(str, Enum):
    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class UpstreamState(str, Enum):
    UP = "up"
    DOWN = "down"


class ConditionKind(str, Enum):
    """Predicate family a rule's condition text maps to."""
    CPU_THRESHOLD = "cpu_threshold"
    MEMORY_THRESHOLD = "memory_threshold"
    DISK_THRESHOLD = "disk_threshold"
    UPSTREAM_DOWN = "upstream_down"
    SSL_EXPIRING = "ssl_expiring"
    UNKNOWN = "unknown"


def classify_condition(condition) -> ConditionKind:
    """Map condition text to its predicate family. First match wins."""
    text = condition or ""
    if "cpu" in text and "threshold" in text:
        return ConditionKind.CPU_THRESHOLD
    if "memory" in text and "threshold" in text:
        return ConditionKind.MEMORY_THRESHOLD
    if "disk" in text and "threshold" in text:
        return ConditionKind.DISK_THRESHOLD
    if "upstream_status" in text or "http_status" in text:
        return ConditionKind.UPSTREAM_DOWN
    if "ssl_days_remaining" in text and "threshold" in text:
        return ConditionKind.SSL_EXPIRING
    return ConditionKind.UNKNOWN
