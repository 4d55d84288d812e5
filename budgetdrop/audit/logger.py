"""
Ledger Event Logger

DESIGN DECISION: The engine returns events; this module is where they go.
The logger:
- Writes every event to the structured local log
- Persists events when an event store is configured
- Fans events out to subscribers (sound, toasts, UI refresh)
- Gracefully handles failures (a broken store or subscriber never breaks
  the ledger)
"""

import logging
from typing import Callable, Iterable, Optional

import structlog

from budgetdrop.config import get_settings
from budgetdrop.models.events import EventSeverity, LedgerEvent, LedgerEventType
from budgetdrop.services.storage import EventStorageInterface


EventHandler = Callable[[LedgerEvent], None]


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


_log_settings = get_settings().logging
configure_logging(_log_settings.level, _log_settings.json_output)


class LedgerEventLogger:
    """
    Central event dispatcher.

    Delivers each event to:
    1. Structured local log (for debugging)
    2. Event storage (for history), if configured
    3. Subscribers registered for its type
    """

    def __init__(self, storage: Optional[EventStorageInterface] = None):
        """
        Initialize event logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._subscribers: list[tuple[Optional[frozenset], EventHandler]] = []
        self._logger = structlog.get_logger("budgetdrop.events")

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Optional[Iterable[LedgerEventType]] = None,
    ) -> None:
        """
        Register a handler.

        Args:
            handler: Called with each matching event
            event_types: Types to receive. None means every event.
        """
        types = frozenset(event_types) if event_types is not None else None
        self._subscribers.append((types, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscribers = [(t, h) for t, h in self._subscribers if h != handler]

    def log(self, event: LedgerEvent) -> bool:
        """
        Log and dispatch a single event.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity is EventSeverity.ERROR:
            self._logger.error("ledger_event", **log_dict)
        elif event.severity is EventSeverity.WARNING:
            self._logger.warning("ledger_event", **log_dict)
        elif event.severity is EventSeverity.DEBUG:
            self._logger.debug("ledger_event", **log_dict)
        else:
            self._logger.info("ledger_event", **log_dict)

        stored = True
        if self._storage is not None:
            try:
                stored = self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "event_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                stored = False

        self._notify(event)
        return stored

    def dispatch(self, events: Iterable[LedgerEvent]) -> int:
        """
        Log and dispatch events in order.

        Returns the number of events whose storage write failed.
        """
        return sum(0 if self.log(event) else 1 for event in events)

    def _notify(self, event: LedgerEvent) -> None:
        for types, handler in list(self._subscribers):
            if types is not None and event.event_type not in types:
                continue
            try:
                handler(event)
            except Exception as e:
                self._logger.error(
                    "event_subscriber_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                    event_type=event.event_type.value,
                )
