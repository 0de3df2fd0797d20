"""Point-in-time probes: host resources, upstream reachability, certificate expiry."""
import math
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone

import psutil
import requests

from models.enums import UpstreamState
from models.metrics import SystemMetrics, UpstreamStatus, CertificateExpiry

logger = logging.getLogger("proxywatch.monitor.probes")

DISK_COMMAND = ["df", "/"]
UPSTREAM_TIMEOUT = 5
UPSTREAM_HARD_TIMEOUT = 6
SECONDS_PER_DAY = 86400


def cpu_usage_since_boot() -> float:
    """CPU busy percentage from one cumulative snapshot of per-core tick counters.

    This is a lifetime average since boot, not instantaneous load.
    """
    total = 0.0
    idle = 0.0
    for times in psutil.cpu_times(percpu=True):
        # Linux already counts guest time inside user/nice
        total += sum(times) - getattr(times, "guest", 0) - getattr(times, "guest_nice", 0)
        idle += times.idle
    if total <= 0:
        return 0.0
    return 100 - (100 * idle / total)


def memory_usage() -> float:
    mem = psutil.virtual_memory()
    return (mem.total - mem.available) / mem.total * 100


def disk_usage(command=None) -> float:
    """Root filesystem Use% as reported by df. Returns 0 on any failure."""
    command = command or DISK_COMMAND
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=5)
        if result.returncode != 0:
            raise RuntimeError(result.stderr.strip() or f"exit code {result.returncode}")
        last_line = result.stdout.strip().splitlines()[-1]
        use_column = next(col for col in last_line.split() if col.endswith("%"))
        return float(use_column.rstrip("%"))
    except Exception as e:
        logger.error(f"Failed to get disk usage: {e}")
        return 0.0


def sample_system_metrics(disk_command=None) -> SystemMetrics:
    return SystemMetrics(
        cpu=round(cpu_usage_since_boot(), 1),
        memory=round(memory_usage(), 1),
        disk=disk_usage(disk_command),
    )


def check_upstream(url, timeout=UPSTREAM_TIMEOUT) -> UpstreamState:
    """Single reachability probe: any status in [200, 500) counts as up."""
    try:
        resp = requests.get(url, timeout=timeout, allow_redirects=False, stream=True)
        resp.close()
    except requests.RequestException as e:
        logger.debug(f"Upstream {url} unreachable: {e}")
        return UpstreamState.DOWN
    return UpstreamState.UP if 200 <= resp.status_code < 500 else UpstreamState.DOWN


def probe_upstreams(db, timeout=UPSTREAM_TIMEOUT, hard_timeout=UPSTREAM_HARD_TIMEOUT):
    """Probe every configured upstream; one target's failure never affects another."""
    try:
        domains = db.list_domains_with_upstreams()
    except Exception as e:
        logger.error(f"Failed to check upstream health: {e}")
        return []

    targets = [
        (f"{d['name']} -> {u['host']}:{u['port']}", f"http://{u['host']}:{u['port']}")
        for d in domains
        for u in d["upstreams"]
    ]
    if not targets:
        return []

    statuses = []
    pool = ThreadPoolExecutor(max_workers=min(16, len(targets)), thread_name_prefix="upstream-probe")
    try:
        futures = [(name, pool.submit(check_upstream, url, timeout)) for name, url in targets]
        for name, future in futures:
            try:
                state = future.result(timeout=hard_timeout)
            except FutureTimeout:
                logger.debug(f"Upstream {name} exceeded {hard_timeout}s")
                state = UpstreamState.DOWN
            except Exception as e:
                logger.debug(f"Upstream {name} probe error: {e}")
                state = UpstreamState.DOWN
            statuses.append(UpstreamStatus(name=name, status=state))
    finally:
        pool.shutdown(wait=False)
    return statuses


def probe_certificates(db, now=None):
    """Days remaining per persisted certificate; the stored valid_to is authoritative."""
    now = now or datetime.now(timezone.utc)
    try:
        certificates = db.list_certificates()
    except Exception as e:
        logger.error(f"Failed to check SSL certificates: {e}")
        return []

    facts = []
    for cert in certificates:
        try:
            days = math.ceil((cert.valid_to - now).total_seconds() / SECONDS_PER_DAY)
        except Exception as e:
            logger.error(f"Failed to process SSL certificate for {cert.domain_name}: {e}")
            continue
        facts.append(CertificateExpiry(domain=cert.domain_name, days_remaining=days))
        if days <= 30:
            logger.debug(f"SSL certificate {cert.domain_name}: {days} days remaining "
                         f"(expires: {cert.valid_to.isoformat()})")

    logger.debug(f"Processed {len(facts)} SSL certificate(s)")
    return facts
