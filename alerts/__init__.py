"""Alert system module."""
from alerts.engine import AlertMonitor
from alerts.cooldown import RuleTracker
from alerts.conditions import classify_condition, evaluate_condition
from alerts.channels import NotificationSender, EmailChannel, TelegramChannel
