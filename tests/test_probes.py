"""Tests for host, upstream and certificate probes."""
import subprocess
import threading
import time
from collections import namedtuple
from datetime import datetime, timedelta, timezone
from unittest.mock import patch, MagicMock

import requests

from models.enums import UpstreamState
from monitor import probes

CpuTimes = namedtuple("CpuTimes", "user nice system idle iowait")
LinuxCpuTimes = namedtuple("LinuxCpuTimes", "user nice system idle iowait irq softirq steal guest guest_nice")
Mem = namedtuple("Mem", "total available")

DF_OUTPUT = (
    "Filesystem     1K-blocks     Used Available Use% Mounted on\n"
    "/dev/sda1      102400000 73728000  28672000  73% /\n"
)


# ── System metrics ─────────────────────────────────────

@patch("monitor.probes.psutil.cpu_times")
def test_cpu_usage_aggregates_all_cores(mock_times):
    mock_times.return_value = [CpuTimes(30, 0, 10, 60, 0), CpuTimes(10, 0, 10, 80, 0)]
    # idle 140 of 200 ticks
    assert probes.cpu_usage_since_boot() == 30.0
    mock_times.assert_called_once_with(percpu=True)


@patch("monitor.probes.psutil.cpu_times")
def test_cpu_usage_excludes_guest_time(mock_times):
    mock_times.return_value = [LinuxCpuTimes(user=30, nice=10, system=10, idle=50, iowait=0,
                                             irq=0, softirq=0, steal=0, guest=20, guest_nice=5)]
    # guest ticks are already in user/nice: idle 50 of 100
    assert probes.cpu_usage_since_boot() == 50.0


@patch("monitor.probes.psutil.cpu_times", return_value=[])
def test_cpu_usage_no_ticks(mock_times):
    assert probes.cpu_usage_since_boot() == 0.0


@patch("monitor.probes.subprocess.run")
def test_disk_usage_parses_df(mock_run):
    mock_run.return_value = MagicMock(returncode=0, stdout=DF_OUTPUT, stderr="")
    assert probes.disk_usage() == 73.0
    assert mock_run.call_args[0][0] == ["df", "/"]


@patch("monitor.probes.subprocess.run", side_effect=subprocess.TimeoutExpired("df", 5))
def test_disk_usage_failure_returns_zero(mock_run, caplog):
    assert probes.disk_usage() == 0.0
    assert "Failed to get disk usage" in caplog.text


@patch("monitor.probes.subprocess.run")
def test_disk_usage_nonzero_exit(mock_run):
    mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="df: /: No such file")
    assert probes.disk_usage() == 0.0


@patch("monitor.probes.disk_usage", return_value=55.0)
@patch("monitor.probes.psutil.virtual_memory", return_value=Mem(total=8000, available=2003))
@patch("monitor.probes.psutil.cpu_times")
def test_sample_system_metrics_rounds(mock_times, mock_mem, mock_disk):
    mock_times.return_value = [CpuTimes(1, 0, 0, 2, 0)]
    metrics = probes.sample_system_metrics()
    assert metrics.cpu == 33.3
    assert metrics.memory == 75.0
    assert metrics.disk == 55.0


# ── Upstreams ──────────────────────────────────────────

def _response(code):
    resp = MagicMock(status_code=code)
    return resp


@patch("monitor.probes.requests.get")
def test_check_upstream_status_classes(mock_get):
    for code, expected in [(200, UpstreamState.UP), (302, UpstreamState.UP), (404, UpstreamState.UP),
                           (499, UpstreamState.UP), (500, UpstreamState.DOWN), (503, UpstreamState.DOWN),
                           (101, UpstreamState.DOWN)]:
        mock_get.return_value = _response(code)
        assert probes.check_upstream("http://10.0.0.1:80") == expected, code


@patch("monitor.probes.requests.get", side_effect=requests.ConnectionError("refused"))
def test_check_upstream_transport_error(mock_get):
    assert probes.check_upstream("http://10.0.0.1:80") == UpstreamState.DOWN
    assert mock_get.call_args.kwargs["timeout"] == 5


def test_probe_upstreams_isolates_failures(temp_db):
    app = temp_db.create_domain("app.example.com")
    temp_db.add_upstream(app, "10.0.0.1", 8080)
    temp_db.add_upstream(app, "10.0.0.2", 8080)
    temp_db.create_domain("static.example.com")  # no upstreams

    def fake_get(url, **kwargs):
        if "10.0.0.2" in url:
            raise requests.Timeout("timed out")
        return _response(200)

    with patch("monitor.probes.requests.get", side_effect=fake_get):
        statuses = probes.probe_upstreams(temp_db)

    assert [(s.name, s.status) for s in statuses] == [
        ("app.example.com -> 10.0.0.1:8080", UpstreamState.UP),
        ("app.example.com -> 10.0.0.2:8080", UpstreamState.DOWN),
    ]


def test_probe_upstreams_hard_timeout(temp_db):
    app = temp_db.create_domain("app.example.com")
    temp_db.add_upstream(app, "10.0.0.1", 8080)
    temp_db.add_upstream(app, "10.0.0.9", 8080)
    release = threading.Event()

    def fake_get(url, **kwargs):
        if "10.0.0.1" in url:
            release.wait(5)  # hangs past the hard limit
        return _response(200)

    started = time.monotonic()
    try:
        with patch("monitor.probes.requests.get", side_effect=fake_get):
            statuses = probes.probe_upstreams(temp_db, timeout=5, hard_timeout=0.2)
        elapsed = time.monotonic() - started
    finally:
        release.set()

    assert [(s.name, s.status) for s in statuses] == [
        ("app.example.com -> 10.0.0.1:8080", UpstreamState.DOWN),
        ("app.example.com -> 10.0.0.9:8080", UpstreamState.UP),
    ]
    assert elapsed < 2


def test_probe_upstreams_store_failure():
    db = MagicMock()
    db.list_domains_with_upstreams.side_effect = RuntimeError("no such table")
    assert probes.probe_upstreams(db) == []


def test_probe_upstreams_none_configured(temp_db):
    assert probes.probe_upstreams(temp_db) == []


# ── Certificates ───────────────────────────────────────

def test_probe_certificates_ceil_days(temp_db):
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
    for name, delta in [("a.com", timedelta(days=29, hours=1)), ("b.com", timedelta(days=30)),
                        ("c.com", timedelta(hours=-36))]:
        domain_id = temp_db.create_domain(name)
        temp_db.create_certificate(domain_id, "Let's Encrypt", now - timedelta(days=60), now + delta)

    facts = {f.domain: f.days_remaining for f in probes.probe_certificates(temp_db, now=now)}
    assert facts == {"a.com": 30, "b.com": 30, "c.com": -1}


def test_probe_certificates_store_failure():
    db = MagicMock()
    db.list_certificates.side_effect = RuntimeError("locked")
    assert probes.probe_certificates(db) == []
