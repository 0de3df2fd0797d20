"""Per-rule check-interval and cooldown tracking.

State lives only in memory and only for the lifetime of the tracker; a fresh
process re-evaluates every rule on its first tick.
"""
import time
import logging

logger = logging.getLogger("proxywatch.alerts.cooldown")

DEFAULT_COOLDOWN_SECONDS = 5 * 60
SSL_COOLDOWN_SECONDS = 24 * 60 * 60


class RuleTracker:
    def __init__(self, clock=None, default_cooldown=DEFAULT_COOLDOWN_SECONDS,
                 ssl_cooldown=SSL_COOLDOWN_SECONDS):
        self.clock = clock or time.time
        self.default_cooldown = default_cooldown
        self.ssl_cooldown = ssl_cooldown
        self.last_check: dict[str, float] = {}
        self.last_alert: dict[str, float] = {}

    def cooldown_period(self, condition) -> float:
        """Seconds a rule stays quiet after firing."""
        # SSL expiry moves slowly; resource and upstream conditions flap
        if "ssl_days_remaining" in (condition or ""):
            return self.ssl_cooldown
        return self.default_cooldown

    def should_check_rule(self, rule_id, check_interval) -> bool:
        last = self.last_check.get(rule_id)
        if last is None:
            return True
        return self.clock() - last >= check_interval

    def record_checked(self, rule_id):
        self.last_check[rule_id] = self.clock()

    def is_in_cooldown(self, rule_id, condition) -> bool:
        last = self.last_alert.get(rule_id)
        if last is None:
            return False
        return self.clock() - last < self.cooldown_period(condition)

    def record_alerted(self, rule_id):
        self.last_alert[rule_id] = self.clock()

    def reset(self):
        self.last_check.clear()
        self.last_alert.clear()
