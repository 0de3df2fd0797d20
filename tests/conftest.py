"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from models.database import Database
from models.enums import UpstreamState
from models.metrics import SystemMetrics, UpstreamStatus, CertificateExpiry


class FakeClock:
    """Manually advanced clock returning epoch seconds."""
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSender:
    """Notification sender that records every dispatch."""
    def __init__(self):
        self.calls = []

    def send(self, rule_name, details, severity, channels):
        self.calls.append({"rule_name": rule_name, "details": details,
                           "severity": severity, "channels": channels})
        return {"results": [{"channel": c["name"], "type": c["type"], "success": True}
                            for c in channels]}


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def sample_metrics():
    return SystemMetrics(cpu=42.5, memory=63.1, disk=71.0)


@pytest.fixture
def sample_upstreams():
    return [
        UpstreamStatus(name="app.example.com -> 10.0.0.1:8080", status=UpstreamState.UP),
        UpstreamStatus(name="app.example.com -> 10.0.0.2:8080", status=UpstreamState.DOWN),
        UpstreamStatus(name="api.example.com -> 10.0.1.1:9000", status=UpstreamState.DOWN),
    ]


@pytest.fixture
def sample_certs():
    return [
        CertificateExpiry(domain="a.example.com", days_remaining=29),
        CertificateExpiry(domain="b.example.com", days_remaining=30),
        CertificateExpiry(domain="c.example.com", days_remaining=31),
    ]


@pytest.fixture
def seeded_certs(temp_db):
    """Three domains with certificates expiring in 10, 60 and 5 days."""
    now = datetime.now(timezone.utc)
    ids = {}
    for name, days, issuer, auto_renew in [
        ("soon.example.com", 10, "Let's Encrypt", True),
        ("later.example.com", 60, "Let's Encrypt", True),
        ("manual.example.com", 5, "DigiCert", True),
    ]:
        domain_id = temp_db.create_domain(name)
        ids[name] = temp_db.create_certificate(
            domain_id, issuer, now - timedelta(days=80), now + timedelta(days=days),
            auto_renew=auto_renew,
        )
    return ids
