"""Utility modules for proxywatch."""
from utils.logger import setup_logging
