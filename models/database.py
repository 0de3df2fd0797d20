"""SQLite database for domains, upstreams, certificates, alert rules and notification channels."""
import json
import sqlite3
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from models.alerts import AlertRule, NotificationChannel
from models.enums import ConditionKind, SSLStatus, classify_condition
from models.ssl import Certificate

logger = logging.getLogger("proxywatch.db")

# Columns update_certificate() is allowed to touch
CERTIFICATE_FIELDS = {
    "certificate", "private_key", "chain", "issuer", "valid_from", "valid_to",
    "status", "auto_renew",
}


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value):
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def _parse_dt(value):
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _new_id():
    return uuid.uuid4().hex


class Database:
    def __init__(self, db_path="data/proxywatch.db"):
        self.db_path = db_path
        self.conn = None
        # Ticks and renewals share the connection from worker threads
        self._lock = threading.RLock()

    def connect(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS domains (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                status TEXT DEFAULT 'active',
                ssl_enabled INTEGER DEFAULT 0,
                ssl_expiry TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS upstreams (
                id TEXT PRIMARY KEY,
                domain_id TEXT NOT NULL,
                host TEXT NOT NULL,
                port INTEGER NOT NULL,
                protocol TEXT DEFAULT 'http',
                created_at TEXT NOT NULL,
                FOREIGN KEY (domain_id) REFERENCES domains(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS ssl_certificates (
                id TEXT PRIMARY KEY,
                domain_id TEXT NOT NULL UNIQUE,
                auto_renew INTEGER DEFAULT 1,
                issuer TEXT NOT NULL,
                certificate TEXT,
                private_key TEXT,
                chain TEXT,
                valid_from TEXT NOT NULL,
                valid_to TEXT NOT NULL,
                status TEXT DEFAULT 'valid',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (domain_id) REFERENCES domains(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_ssl_valid_to
                ON ssl_certificates(valid_to);

            CREATE TABLE IF NOT EXISTS notification_channels (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                enabled INTEGER DEFAULT 1,
                config TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS alert_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                condition TEXT NOT NULL,
                condition_kind TEXT NOT NULL,
                threshold REAL NOT NULL,
                severity TEXT NOT NULL,
                enabled INTEGER DEFAULT 1,
                check_interval INTEGER DEFAULT 60,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS alert_rule_channels (
                rule_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                PRIMARY KEY (rule_id, channel_id),
                FOREIGN KEY (rule_id) REFERENCES alert_rules(id) ON DELETE CASCADE,
                FOREIGN KEY (channel_id) REFERENCES notification_channels(id) ON DELETE CASCADE
            );
        """)
        self.conn.commit()

    def _write(self, sql, params=()):
        with self._lock:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
            return cur

    def _read(self, sql, params=()):
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    # --- Domains & Upstreams ---

    def create_domain(self, name, status="active"):
        domain_id = _new_id()
        self._write(
            "INSERT INTO domains (id, name, status, created_at) VALUES (?, ?, ?, ?)",
            (domain_id, name, status, _now_iso()),
        )
        return domain_id

    def add_upstream(self, domain_id, host, port, protocol="http"):
        upstream_id = _new_id()
        self._write(
            "INSERT INTO upstreams (id, domain_id, host, port, protocol, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (upstream_id, domain_id, host, int(port), protocol, _now_iso()),
        )
        return upstream_id

    def get_domain(self, domain_id):
        rows = self._read("SELECT * FROM domains WHERE id = ?", (domain_id,))
        return dict(rows[0]) if rows else None

    def list_domains_with_upstreams(self):
        """Return [{id, name, upstreams: [{host, port, protocol}]}] for every domain."""
        domains = self._read("SELECT id, name FROM domains ORDER BY created_at, rowid")
        upstreams = self._read(
            "SELECT domain_id, host, port, protocol FROM upstreams ORDER BY created_at, rowid"
        )
        by_domain = {}
        for u in upstreams:
            by_domain.setdefault(u["domain_id"], []).append(
                {"host": u["host"], "port": u["port"], "protocol": u["protocol"]}
            )
        return [
            {"id": d["id"], "name": d["name"], "upstreams": by_domain.get(d["id"], [])}
            for d in domains
        ]

    def update_domain_ssl_expiry(self, domain_id, valid_to):
        self._write(
            "UPDATE domains SET ssl_expiry = ?, ssl_enabled = 1 WHERE id = ?",
            (_to_iso(valid_to), domain_id),
        )

    # --- SSL Certificates ---

    def create_certificate(self, domain_id, issuer, valid_from, valid_to,
                           auto_renew=True, status=SSLStatus.VALID.value,
                           certificate=None, private_key=None, chain=None):
        cert_id = _new_id()
        now = _now_iso()
        self._write("""
            INSERT INTO ssl_certificates
            (id, domain_id, auto_renew, issuer, certificate, private_key, chain,
             valid_from, valid_to, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            cert_id, domain_id, int(bool(auto_renew)), issuer, certificate, private_key,
            chain, _to_iso(valid_from), _to_iso(valid_to), status, now, now,
        ))
        return cert_id

    def _row_to_certificate(self, row):
        return Certificate(
            id=row["id"],
            domain_id=row["domain_id"],
            domain_name=row["domain_name"],
            auto_renew=bool(row["auto_renew"]),
            issuer=row["issuer"],
            valid_from=_parse_dt(row["valid_from"]),
            valid_to=_parse_dt(row["valid_to"]),
            status=row["status"],
        )

    def list_certificates(self):
        """All certificates with their domain name, soonest expiry first."""
        rows = self._read("""
            SELECT c.*, d.name AS domain_name
            FROM ssl_certificates c JOIN domains d ON d.id = c.domain_id
            ORDER BY c.valid_to ASC
        """)
        return [self._row_to_certificate(r) for r in rows]

    def get_certificate(self, cert_id):
        rows = self._read("""
            SELECT c.*, d.name AS domain_name
            FROM ssl_certificates c JOIN domains d ON d.id = c.domain_id
            WHERE c.id = ?
        """, (cert_id,))
        return self._row_to_certificate(rows[0]) if rows else None

    def get_certificate_material(self, cert_id):
        rows = self._read(
            "SELECT certificate, private_key, chain FROM ssl_certificates WHERE id = ?", (cert_id,)
        )
        return dict(rows[0]) if rows else None

    def update_certificate(self, cert_id, **fields):
        unknown = set(fields) - CERTIFICATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown certificate fields: {', '.join(sorted(unknown))}")
        values = {k: _to_iso(v) for k, v in fields.items()}
        if "status" in values and hasattr(values["status"], "value"):
            values["status"] = values["status"].value
        if "auto_renew" in values:
            values["auto_renew"] = int(bool(values["auto_renew"]))
        values["updated_at"] = _now_iso()

        assignments = ", ".join(f"{k} = ?" for k in values)
        cur = self._write(
            f"UPDATE ssl_certificates SET {assignments} WHERE id = ?",
            (*values.values(), cert_id),
        )
        if cur.rowcount == 0:
            raise KeyError(f"Certificate {cert_id} not found")
        logger.debug(f"Updated certificate {cert_id}: {', '.join(fields)}")

    # --- Notification Channels ---

    def create_notification_channel(self, name, type, config=None, enabled=True):
        channel_id = _new_id()
        self._write(
            "INSERT INTO notification_channels (id, name, type, enabled, config, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (channel_id, name, getattr(type, "value", type), int(bool(enabled)),
             json.dumps(config or {}), _now_iso()),
        )
        return channel_id

    def _row_to_channel(self, row):
        try:
            config = json.loads(row["config"] or "{}")
        except ValueError:
            logger.warning(f"Channel {row['id']} has unreadable config, using empty")
            config = {}
        return NotificationChannel(
            id=row["id"], name=row["name"], type=row["type"],
            enabled=bool(row["enabled"]), config=config,
        )

    def get_notification_channel(self, channel_id):
        rows = self._read("SELECT * FROM notification_channels WHERE id = ?", (channel_id,))
        return self._row_to_channel(rows[0]) if rows else None

    def list_notification_channels(self):
        rows = self._read("SELECT * FROM notification_channels ORDER BY created_at, rowid")
        return [self._row_to_channel(r) for r in rows]

    # --- Alert Rules ---

    def create_alert_rule(self, name, condition, threshold, severity="warning",
                          check_interval=60, enabled=True, channel_ids=None):
        rule_id = _new_id()
        kind = classify_condition(condition)
        with self._lock:
            try:
                self.conn.execute("""
                    INSERT INTO alert_rules
                    (id, name, condition, condition_kind, threshold, severity, enabled, check_interval, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    rule_id, name, condition, kind.value, float(threshold),
                    getattr(severity, "value", severity), int(bool(enabled)),
                    int(check_interval), _now_iso(),
                ))
                for channel_id in channel_ids or []:
                    self.conn.execute(
                        "INSERT OR IGNORE INTO alert_rule_channels (rule_id, channel_id) VALUES (?, ?)",
                        (rule_id, channel_id),
                    )
            except sqlite3.Error:
                # Rule and links are saved together or not at all
                self.conn.rollback()
                raise
            self.conn.commit()
        return rule_id

    def _load_rules(self, where=""):
        rules = self._read(f"SELECT * FROM alert_rules {where} ORDER BY created_at, rowid")
        links = self._read("""
            SELECT rc.rule_id, ch.*
            FROM alert_rule_channels rc JOIN notification_channels ch ON ch.id = rc.channel_id
            ORDER BY ch.created_at, ch.rowid
        """)
        channels_by_rule = {}
        for link in links:
            channels_by_rule.setdefault(link["rule_id"], []).append(self._row_to_channel(link))

        return [
            AlertRule(
                id=r["id"],
                name=r["name"],
                condition=r["condition"],
                threshold=r["threshold"],
                severity=r["severity"],
                enabled=bool(r["enabled"]),
                check_interval=r["check_interval"],
                channels=channels_by_rule.get(r["id"], []),
                kind=ConditionKind(r["condition_kind"]),
            )
            for r in rules
        ]

    def list_enabled_rules(self):
        """Enabled rules in creation order, each with its attached channels."""
        return self._load_rules("WHERE enabled = 1")

    def list_rules(self):
        return self._load_rules()
