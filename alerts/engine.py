"""Alert monitoring loop: probes -> conditions -> cooldowns -> notifications."""
import json
import logging

from alerts.conditions import evaluate_condition
from alerts.cooldown import RuleTracker
from monitor import probes
from monitor.scheduler import LoopScheduler

logger = logging.getLogger("proxywatch.alerts.engine")

DEFAULT_SCAN_INTERVAL = 10


class AlertMonitor(LoopScheduler):
    """Evaluates enabled alert rules on a fixed global tick.

    Each rule is additionally gated by its own ``check_interval`` and by a
    cooldown after it fires; both live in the ``RuleTracker``.
    """

    name = "alert-monitoring"

    def __init__(self, db, sender, tracker=None, metrics_probe=None, upstream_probe=None,
                 certificate_probe=None, skip_overlapping=False, poll_seconds=1.0):
        super().__init__(skip_overlapping=skip_overlapping, poll_seconds=poll_seconds)
        self.db = db
        self.sender = sender
        self.tracker = tracker or RuleTracker()
        self.metrics_probe = metrics_probe or probes.sample_system_metrics
        self.upstream_probe = upstream_probe or (lambda: probes.probe_upstreams(self.db))
        self.certificate_probe = certificate_probe or (lambda: probes.probe_certificates(self.db))

    def collect_facts(self):
        metrics = self.metrics_probe()
        logger.info(f"System metrics - CPU: {metrics.cpu}%, Memory: {metrics.memory}%, Disk: {metrics.disk}%")

        upstreams = self.upstream_probe()
        down = sum(1 for u in upstreams if u.is_down)
        logger.info(f"Upstreams - Total: {len(upstreams)}, Down: {down}")

        certs = self.certificate_probe()
        expiring = sum(1 for c in certs if c.days_remaining < 30)
        logger.info(f"SSL certificates - Total: {len(certs)}, Expiring soon: {expiring}")
        return metrics, upstreams, certs

    def run_once(self):
        """One monitoring cycle. Returns ids of rules whose alert was dispatched."""
        logger.info("Running alert monitoring cycle...")
        metrics, upstreams, certs = self.collect_facts()

        rules = self.db.list_enabled_rules()
        logger.info(f"Checking {len(rules)} enabled alert rules...")

        dispatched = []
        for rule in rules:
            if self._process_rule(rule, metrics, upstreams, certs):
                dispatched.append(rule.id)

        logger.info("Alert monitoring cycle completed")
        return dispatched

    def _process_rule(self, rule, metrics, upstreams, certs):
        if not self.tracker.should_check_rule(rule.id, rule.check_interval):
            logger.debug(f"Rule '{rule.name}' - not time yet (interval: {rule.check_interval}s)")
            return False

        self.tracker.record_checked(rule.id)

        if self.tracker.is_in_cooldown(rule.id, rule.condition):
            minutes = self.tracker.cooldown_period(rule.condition) / 60
            logger.debug(f"Rule '{rule.name}' in cooldown ({minutes:g} min), skipping")
            return False

        evaluation = evaluate_condition(rule.condition, rule.threshold, metrics,
                                        upstreams, certs, kind=rule.kind)
        if not evaluation.triggered:
            logger.debug(f"Rule '{rule.name}' - OK ({evaluation.details})")
            return False

        logger.warning(f"Alert triggered: {rule.name}")
        logger.warning(f"  Details: {evaluation.details}")

        channels = [c.to_dispatch() for c in rule.enabled_channels()]
        if not channels:
            logger.warning(f"  No enabled channels for rule '{rule.name}'")
            return False

        result = self.sender.send(rule.name, evaluation.details, rule.severity, channels)
        logger.info(f"Notification sent to {len(channels)} channels")
        logger.info(f"  Results: {json.dumps(result.get('results', []))}")

        self.tracker.record_alerted(rule.id)
        return True

    def start(self, interval_seconds=DEFAULT_SCAN_INTERVAL):
        if self.is_running:
            logger.warning("Alert monitoring is already running")
            return self._timer

        logger.info(f"Starting alert monitoring (global scan: every {interval_seconds} second(s))")
        logger.info("Each alert rule has its own check interval configured separately")
        return self.start_timer(interval_seconds)
