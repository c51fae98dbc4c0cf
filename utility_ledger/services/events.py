"""Fire-and-forget ledger events for the notification and reporting layers.

Events are published only after the ledger transaction has committed. A failing
subscriber is logged and skipped; it can never undo the committed write.
"""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Callable, Union


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleCreated:
    """A new billing cycle was committed."""

    tenant_id: int
    cycle_id: int
    bill_amount: Decimal


@dataclass(frozen=True)
class PaymentRecorded:
    """A payment was committed against a billing cycle."""

    tenant_id: int
    cycle_id: int
    payment_id: int
    amount: Decimal
    resulting_balance: Decimal


LedgerEvent = Union[CycleCreated, PaymentRecorded]
EventHandler = Callable[[LedgerEvent], None]


class EventPublisher:
    """In-process fan-out to subscribed handlers."""

    def __init__(self):
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler called with every published event."""
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a previously registered handler (no-op if absent)."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self, event: LedgerEvent) -> None:
        """Deliver an event to every handler.

        Handler failures are logged with traceback and do not propagate.
        """
        logger.debug(f"Publishing {type(event).__name__}: {asdict(event)}")
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for {type(event).__name__}"
                )


# Process-wide publisher used when services are not given one explicitly
publisher = EventPublisher()


__all__ = [
    "CycleCreated",
    "PaymentRecorded",
    "LedgerEvent",
    "EventHandler",
    "EventPublisher",
    "publisher",
]
