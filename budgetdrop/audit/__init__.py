"""Event logging and dispatch package."""

from budgetdrop.audit.logger import LedgerEventLogger, configure_logging

__all__ = ["LedgerEventLogger", "configure_logging"]
