"""SSL auto-renewal loop.

Every tick scans the stored certificates and starts a background renewal for
each auto-renewable one that expires within the threshold. Renewals are not
joined by the tick; their failures are logged and recorded on the
certificate, never raised into the loop.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone

from models.enums import SSLStatus
from monitor.scheduler import LoopScheduler

logger = logging.getLogger("proxywatch.certs.renewal")

DEFAULT_CHECK_INTERVAL_MS = 3_600_000
DEFAULT_RENEW_THRESHOLD_DAYS = 30
LETSENCRYPT_ISSUER = "Let's Encrypt"


class SSLRenewalScheduler(LoopScheduler):
    name = "ssl-auto-renew"

    def __init__(self, db, acme, auto_renew_issuer=LETSENCRYPT_ISSUER, clock=None,
                 skip_overlapping=False, poll_seconds=1.0):
        super().__init__(skip_overlapping=skip_overlapping, poll_seconds=poll_seconds)
        self.db = db
        self.acme = acme
        self.auto_renew_issuer = auto_renew_issuer
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.check_interval_ms = DEFAULT_CHECK_INTERVAL_MS
        self.renew_threshold_days = DEFAULT_RENEW_THRESHOLD_DAYS
        self._renewals = []

    def run_once(self):
        """Scan certificates and start renewals. Returns ids of certificates sent for renewal."""
        logger.debug("Checking for expiring SSL certificates...")
        certificates = self.db.list_certificates()

        now = self.clock()
        threshold = now + timedelta(days=self.renew_threshold_days)
        started = []

        for cert in certificates:
            if not cert.auto_renew:
                logger.debug(f"Certificate {cert.id} ({cert.domain_name}) has autoRenew disabled, skipping")
                continue
            if cert.issuer != self.auto_renew_issuer:
                logger.debug(f"Certificate {cert.id} ({cert.domain_name}) is not {self.auto_renew_issuer}, skipping")
                continue
            if cert.valid_to > threshold:
                continue

            logger.info(f"Certificate for {cert.domain_name} expires in "
                        f"{cert.days_until_expiry(now)} days, attempting renewal...")
            self._spawn_renewal(cert)
            started.append(cert.id)

        return started

    def _spawn_renewal(self, cert):
        self._renewals = [t for t in self._renewals if t.is_alive()]
        worker = threading.Thread(target=self._renew_isolated, args=(cert,),
                                  name=f"ssl-renew-{cert.domain_name}", daemon=True)
        self._renewals.append(worker)
        worker.start()

    def _renew_isolated(self, cert):
        try:
            self.renew_certificate(cert)
        except Exception as e:
            logger.error(f"Failed to auto-renew certificate {cert.id} ({cert.domain_name}): {e}")

    def renew_certificate(self, cert):
        """Renew one certificate and persist the result. Raises on failure."""
        try:
            logger.info(f"[Auto-Renew] Starting renewal for {cert.domain_name}")
            files = self.acme.renew(cert.domain_name)
            info = self.acme.parse(files.certificate)

            self.db.update_certificate(
                cert.id,
                certificate=files.certificate,
                private_key=files.private_key,
                chain=files.chain,
                valid_from=info.valid_from,
                valid_to=info.valid_to,
                status=SSLStatus.VALID.value,
            )
            self.db.update_domain_ssl_expiry(cert.domain_id, info.valid_to)

            logger.info(f"[Auto-Renew] Renewed certificate for {cert.domain_name}, "
                        f"valid until {info.valid_to.isoformat()}")
            return info
        except Exception as e:
            logger.error(f"[Auto-Renew] Failed to renew certificate for {cert.domain_name}: {e}")
            try:
                self.db.update_certificate(cert.id, status=SSLStatus.EXPIRING.value)
            except Exception as update_error:
                logger.error(f"Failed to update certificate status: {update_error}")
            raise

    def wait_for_renewals(self, timeout=None):
        """Join renewal threads started so far. Ticks never call this."""
        for t in list(self._renewals):
            t.join(timeout)
        self._renewals = [t for t in self._renewals if t.is_alive()]

    def start(self, check_interval_ms=DEFAULT_CHECK_INTERVAL_MS,
              renew_threshold_days=DEFAULT_RENEW_THRESHOLD_DAYS):
        if self.is_running:
            logger.warning("SSL auto-renew scheduler is already running")
            return self._timer

        self.check_interval_ms = check_interval_ms
        self.renew_threshold_days = renew_threshold_days
        logger.info(f"Starting SSL auto-renew scheduler (check interval: {check_interval_ms}ms, "
                    f"renew threshold: {renew_threshold_days} days)")
        handle = self.start_timer(check_interval_ms / 1000)
        logger.info("SSL auto-renew scheduler started")
        return handle

    def get_status(self):
        return {
            "is_running": self.is_running,
            "check_interval_ms": self.check_interval_ms,
            "renew_threshold_days": self.renew_threshold_days,
        }
