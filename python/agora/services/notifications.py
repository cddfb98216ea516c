"""Notification fan-out and recipient operations.

Fan-out turns a committed content action into at most one notification per
recipient. Delivery is best-effort: the triggering action has already been
committed when fan-out runs, and a failure here is logged and swallowed so it
can never fail or roll back that action.

Suppression rules, in order:
1. recipient == actor (no self-notification)
2. block edge in either direction between actor and recipient
3. recipient disabled the type in notification_preferences

Only the recipient mutates is_read. Read notifications older than the
retention window are purged by a maintenance task using an elevated handle.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from agora.auth.permissions import can_read_post, is_blocked_between, not_block_related
from agora.db.handles import DataHandle
from agora.db.models import Notification, NotificationPreference, NotificationType, User
from agora.db.session import savepoint, transaction
from agora.errors import ApiErrorCode, ForbiddenError, NotFoundError
from agora.logging import get_logger
from agora.schemas.common import Page
from agora.schemas.notification import (
    NotificationOut,
    NotificationPreferencesOut,
    UpdatePreferencesRequest,
)
from agora.services.text import extract_mentions
from agora.services.users import load_user_summaries

logger = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 30


@dataclass(frozen=True)
class NotificationCandidate:
    """A notification that fan-out may or may not deliver."""

    recipient_id: UUID
    actor_id: UUID
    type: NotificationType
    reference_type: str
    reference_id: UUID


# =============================================================================
# Fan-out
# =============================================================================


def _suppression_reason(handle: DataHandle, candidate: NotificationCandidate) -> str | None:
    if candidate.recipient_id == candidate.actor_id:
        return "self"
    if is_blocked_between(handle.db, candidate.actor_id, candidate.recipient_id):
        return "blocked"
    return None


def _preference_allows(handle: DataHandle, candidate: NotificationCandidate) -> bool:
    prefs = handle.db.get(NotificationPreference, candidate.recipient_id)
    return prefs is None or prefs.allows(candidate.type.value)


def _to_row(candidate: NotificationCandidate) -> Notification:
    return Notification(
        recipient_id=candidate.recipient_id,
        sender_id=candidate.actor_id,
        type=candidate.type.value,
        reference_type=candidate.reference_type,
        reference_id=candidate.reference_id,
    )


def notify(
    handle: DataHandle,
    *,
    recipient_id: UUID,
    actor_id: UUID,
    notification_type: NotificationType,
    reference_type: str,
    reference_id: UUID,
) -> Notification | None:
    """Deliver one notification unless a suppression rule applies.

    Must be called after the triggering action is committed.

    Returns:
        The persisted notification, or None if suppressed or persistence failed.
    """
    candidate = NotificationCandidate(
        recipient_id, actor_id, notification_type, reference_type, reference_id
    )
    db = handle.db

    try:
        reason = _suppression_reason(handle, candidate)
        if reason is None and not _preference_allows(handle, candidate):
            reason = "preference_disabled"
        if reason is not None:
            logger.debug("notification_suppressed", reason=reason, type=notification_type.value)
            return None

        row = _to_row(candidate)
        with savepoint(db):
            db.add(row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "notification_persist_failed",
            type=notification_type.value,
            recipient_id=str(recipient_id),
            error_class=type(e).__name__,
        )
        return None

    return row


def notify_mentions(
    handle: DataHandle,
    *,
    actor_id: UUID,
    text: str | None,
    reference_type: str,
    reference_id: UUID,
    readable_post_id: UUID | None = None,
) -> list[Notification]:
    """Send one mention notification per distinct, resolvable @handle in text.

    Unknown or inactive handles are dropped silently; each resolved recipient
    then goes through the same suppression rules as notify(). When
    readable_post_id is given, recipients who cannot read that post are dropped.
    """
    handles = extract_mentions(text)
    if not handles:
        return []

    try:
        recipients = (
            handle.db.execute(
                select(User.id).where(
                    User.username.in_(handles),
                    User.is_active == True,  # noqa: E712
                )
            )
            .scalars()
            .all()
        )
        if readable_post_id is not None:
            recipients = [
                r for r in recipients if can_read_post(handle.db, r, readable_post_id)
            ]
    except SQLAlchemyError as e:
        handle.db.rollback()
        logger.warning("mention_resolution_failed", error_class=type(e).__name__)
        return []

    delivered = []
    for recipient_id in recipients:
        row = notify(
            handle,
            recipient_id=recipient_id,
            actor_id=actor_id,
            notification_type=NotificationType.mention,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        if row is not None:
            delivered.append(row)
    return delivered


def notify_bulk(handle: DataHandle, candidates: list[NotificationCandidate]) -> list[Notification]:
    """Filter candidates by the self and block rules, then insert survivors together.

    A failed batch is logged and yields []; suppressed candidates are never
    part of the batch.
    """
    db = handle.db
    try:
        survivors = [c for c in candidates if _suppression_reason(handle, c) is None]
        if not survivors:
            return []

        rows = [_to_row(c) for c in survivors]
        with savepoint(db):
            db.add_all(rows)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "notification_batch_failed",
            batch_size=len(candidates),
            error_class=type(e).__name__,
        )
        return []

    return rows


# =============================================================================
# Recipient operations
# =============================================================================


def _visible_to_recipient(recipient_id: UUID):
    return (
        Notification.recipient_id == recipient_id,
        not_block_related(Notification.sender_id, recipient_id),
    )


def list_notifications(
    handle: DataHandle, page: Page, unread_only: bool = False
) -> list[NotificationOut]:
    """List the caller's notifications, newest first.

    Notifications from senders block-related to the caller are hidden.
    """
    caller_id = handle.require_caller()
    db = handle.db

    query = select(Notification).where(*_visible_to_recipient(caller_id))
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712
    query = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(page.limit)
        .offset(page.offset)
    )
    rows = db.execute(query).scalars().all()

    senders = load_user_summaries(db, {n.sender_id for n in rows})
    return [
        NotificationOut(
            id=n.id,
            type=n.type,
            reference_type=n.reference_type,
            reference_id=n.reference_id,
            is_read=n.is_read,
            created_at=n.created_at,
            sender=senders[n.sender_id],
        )
        for n in rows
        if n.sender_id in senders
    ]


def get_unread_count(handle: DataHandle) -> int:
    """Count the caller's unread, visible notifications."""
    caller_id = handle.require_caller()
    count = handle.db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(*_visible_to_recipient(caller_id), Notification.is_read == False)  # noqa: E712
    )
    return int(count or 0)


def mark_notification_read(handle: DataHandle, notification_id: UUID) -> None:
    """Mark one of the caller's notifications read.

    Raises:
        NotFoundError: If the notification does not exist or belongs to someone else.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        notification = db.get(Notification, notification_id)
        if notification is None or notification.recipient_id != caller_id:
            raise NotFoundError(ApiErrorCode.E_NOTIFICATION_NOT_FOUND, "Notification not found")
        notification.is_read = True


def mark_all_read(handle: DataHandle) -> int:
    """Mark every unread notification of the caller read. Idempotent.

    Returns:
        Number of notifications changed by this call.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        result = db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == caller_id,
                Notification.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
        )
    return result.rowcount or 0


def get_preferences(handle: DataHandle) -> NotificationPreferencesOut:
    """Return the caller's preferences (all enabled when never set)."""
    caller_id = handle.require_caller()
    prefs = handle.db.get(NotificationPreference, caller_id)
    if prefs is None:
        return NotificationPreferencesOut()
    return NotificationPreferencesOut.model_validate(prefs)


def update_preferences(
    handle: DataHandle, request: UpdatePreferencesRequest
) -> NotificationPreferencesOut:
    """Apply a partial preference update, creating the row on first use."""
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        prefs = db.get(NotificationPreference, caller_id)
        if prefs is None:
            prefs = NotificationPreference(user_id=caller_id)
            for notification_type in NotificationType:
                setattr(prefs, notification_type.value, True)
            db.add(prefs)
        for field in request.model_fields_set:
            value = getattr(request, field)
            if value is not None:
                setattr(prefs, field, value)

    return NotificationPreferencesOut.model_validate(prefs)


# =============================================================================
# Maintenance
# =============================================================================


def purge_read_notifications(
    handle: DataHandle,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    now: datetime | None = None,
) -> int:
    """Delete read notifications older than the retention window.

    Requires an elevated (service) handle.

    Returns:
        Number of rows deleted.
    """
    if not handle.is_elevated:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Maintenance requires a service handle")

    cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
    db = handle.db
    with transaction(db):
        result = db.execute(
            delete(Notification).where(
                Notification.is_read == True,  # noqa: E712
                Notification.created_at < cutoff,
            )
        )
    deleted = result.rowcount or 0
    logger.info("read_notifications_purged", deleted=deleted, retention_days=retention_days)
    return deleted

