"""
Audit Tracker: review-state tracking for manual code audits.

Main interface: AuditSession
"""

__version__ = "0.1.0"

from .config import AuditTrackerConfig, load_config
from .session import AuditSession

__all__ = ["AuditSession", "AuditTrackerConfig", "load_config"]
