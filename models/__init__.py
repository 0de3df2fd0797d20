"""Data models."""
from models.enums import Severity, ChannelType, SSLStatus, UpstreamState, ConditionKind, classify_condition
from models.metrics import SystemMetrics, UpstreamStatus, CertificateExpiry
from models.alerts import AlertRule, NotificationChannel, ConditionEvaluation
from models.ssl import Certificate, CertificateFiles, CertificateInfo
