"""
Collaborator ports for the lease payment engine.

Contract:
    The engine never delivers notifications, flips property availability
    or talks to a mobile-money provider itself.  It calls these narrow
    interfaces, and the hosting application supplies implementations.

    ``NotificationSink``   -- receives ``Notification`` events.
    ``PropertyStatusHook`` -- told about every lease status change.
    ``PaymentGateway``     -- returns a transaction id for a payment.

The in-memory ``Recording*`` implementations are used by tests and by
local dry runs of the scheduled jobs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from rental_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from rental_modules.lease.models import Lease

logger = get_logger("ports")


# =============================================================================
# Notifications
# =============================================================================


@dataclass(frozen=True)
class Notification:
    """An abstract notification event.  Delivery is the sink's concern."""

    recipient_id: UUID
    lease_id: UUID
    type: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationSink(Protocol):
    def emit(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Default sink: one structured log line per notification."""

    def emit(self, notification: Notification) -> None:
        logger.info(
            "notification_emitted",
            extra={
                "recipient_id": str(notification.recipient_id),
                "lease_id": str(notification.lease_id),
                "notification_type": notification.type,
                "title": notification.title,
            },
        )


class RecordingNotificationSink:
    """Keeps every emitted notification in memory."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def emit(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def of_type(self, notification_type: str) -> list[Notification]:
        return [n for n in self.notifications if n.type == notification_type]

    def for_recipient(self, recipient_id: UUID) -> list[Notification]:
        return [n for n in self.notifications if n.recipient_id == recipient_id]

    def clear(self) -> None:
        self.notifications.clear()


# =============================================================================
# Property availability
# =============================================================================


@runtime_checkable
class PropertyStatusHook(Protocol):
    """Single hook called after every lease status change.

    The implementation decides when a property becomes occupied
    (activation) or available (termination).
    """

    def on_status_changed(
        self,
        lease: Lease,
        old_status: str,
        new_status: str,
    ) -> None: ...


class NullPropertyStatusHook:
    def on_status_changed(
        self,
        lease: Lease,
        old_status: str,
        new_status: str,
    ) -> None:
        return None


@dataclass(frozen=True)
class PropertyStatusChange:
    property_id: UUID
    lease_id: UUID
    old_status: str
    new_status: str


class RecordingPropertyStatusHook:
    """Records every status change it is told about."""

    def __init__(self) -> None:
        self.changes: list[PropertyStatusChange] = []

    def on_status_changed(
        self,
        lease: Lease,
        old_status: str,
        new_status: str,
    ) -> None:
        self.changes.append(
            PropertyStatusChange(
                property_id=lease.property_id,
                lease_id=lease.id,
                old_status=old_status,
                new_status=new_status,
            )
        )


# =============================================================================
# Payment gateway
# =============================================================================


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Starts a mobile-money collection and returns its transaction id.

    ``settles_immediately`` is True when the collection is final once
    ``initiate`` returns; otherwise it settles later through a callback.
    """

    settles_immediately: bool

    def initiate(
        self,
        payment_id: UUID,
        amount: Any,
        payer_phone: str,
        method: str,
    ) -> str: ...
