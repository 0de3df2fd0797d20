"""Alert condition classification and evaluation.

Conditions are free text such as ``"cpu > threshold"`` or
``"ssl_days_remaining < threshold"``. They are classified by substring in a
fixed priority order, first match wins:

    cpu + threshold                 -> CPU_THRESHOLD
    memory + threshold              -> MEMORY_THRESHOLD
    disk + threshold                -> DISK_THRESHOLD
    upstream_status | http_status   -> UPSTREAM_DOWN
    ssl_days_remaining + threshold  -> SSL_EXPIRING
    anything else                   -> UNKNOWN
"""
import logging

from models.alerts import ConditionEvaluation
from models.enums import ConditionKind, classify_condition

logger = logging.getLogger("proxywatch.alerts.conditions")


def _resource(label, value, threshold):
    return ConditionEvaluation(
        triggered=value > threshold,
        details=f"Current {label} usage: {value}% (threshold: {threshold}%)",
    )


def _upstreams_down(upstreams, threshold):
    down = [u for u in upstreams if u.is_down]
    triggered = len(down) >= threshold
    return ConditionEvaluation(
        triggered=triggered,
        details=(f"Backends down: {', '.join(u.name for u in down)}"
                 if triggered else "All backends are healthy"),
    )


def _ssl_expiring(certs, threshold):
    expiring = [c for c in certs if c.days_remaining < threshold]
    if not expiring:
        return ConditionEvaluation(triggered=False, details="All SSL certificates are valid")
    lines = "\n".join(f"- {c.domain}: {c.days_remaining} days remaining" for c in expiring)
    return ConditionEvaluation(triggered=True, details=f"SSL certificates expiring soon:\n{lines}")


def evaluate_condition(condition, threshold, metrics, upstreams, certs, kind=None) -> ConditionEvaluation:
    """Evaluate one rule condition against the current facts.

    ``kind`` is the classification stored with the rule; when omitted the
    text is classified here. Never raises: any failure is reported as a
    non-triggering result.
    """
    try:
        if kind is None:
            kind = classify_condition(condition)

        if kind == ConditionKind.CPU_THRESHOLD:
            return _resource("CPU", metrics.cpu, threshold)
        if kind == ConditionKind.MEMORY_THRESHOLD:
            return _resource("memory", metrics.memory, threshold)
        if kind == ConditionKind.DISK_THRESHOLD:
            return _resource("disk", metrics.disk, threshold)
        if kind == ConditionKind.UPSTREAM_DOWN:
            return _upstreams_down(upstreams, threshold)
        if kind == ConditionKind.SSL_EXPIRING:
            return _ssl_expiring(certs, threshold)

        return ConditionEvaluation(triggered=False, details="Unknown condition")
    except Exception as e:
        logger.error(f"Failed to evaluate condition {condition!r}: {e}")
        return ConditionEvaluation(triggered=False, details="Error evaluating condition")
