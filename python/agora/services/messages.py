"""Direct message service layer.

Messages are private to their two participants. Sending requires an active
recipient and no block in either direction. A sender may edit a message
within the configured edit window and may soft-delete it at any time.
"""

from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from agora.auth.permissions import is_blocked_between, not_block_related
from agora.config import get_settings
from agora.db.handles import DataHandle
from agora.db.models import Message, NotificationType, ReferenceType
from agora.db.session import transaction
from agora.errors import ApiErrorCode, ForbiddenError, InvalidRequestError, NotFoundError
from agora.logging import get_logger
from agora.schemas.common import Page
from agora.schemas.message import ConversationOut, MessageOut
from agora.services.notifications import notify
from agora.services.redact import safe_kv
from agora.services.users import get_active_user, load_user_summaries

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000


def _clean_content(content: str) -> str:
    text = content.strip()
    if not text:
        raise InvalidRequestError(ApiErrorCode.E_CONTENT_REQUIRED, "Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise InvalidRequestError(
            ApiErrorCode.E_CONTENT_TOO_LONG,
            f"Message must be at most {MAX_MESSAGE_LENGTH} characters",
        )
    return text


def _between(a: UUID, b: UUID):
    return or_(
        and_(Message.sender_id == a, Message.recipient_id == b),
        and_(Message.sender_id == b, Message.recipient_id == a),
    )


def _load_own_message(db: Session, caller_id: UUID, message_id: UUID) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.is_deleted:
        raise NotFoundError(ApiErrorCode.E_MESSAGE_NOT_FOUND, "Message not found")
    if message.sender_id != caller_id:
        if message.recipient_id == caller_id:
            raise ForbiddenError(
                ApiErrorCode.E_NOT_AUTHOR, "Only the sender can modify this message"
            )
        raise NotFoundError(ApiErrorCode.E_MESSAGE_NOT_FOUND, "Message not found")
    return message


# =============================================================================
# Messages
# =============================================================================


def send_message(handle: DataHandle, recipient_id: UUID, content: str) -> MessageOut:
    """Send a direct message and notify the recipient.

    Raises:
        InvalidRequestError: If content is empty or too long after trimming,
            or the caller messages themselves.
        NotFoundError: If the recipient does not exist or is deactivated.
        ForbiddenError: If a block exists in either direction.
    """
    caller_id = handle.require_caller()
    db = handle.db
    text = _clean_content(content)

    if recipient_id == caller_id:
        raise InvalidRequestError(ApiErrorCode.E_SELF_ACTION, "You cannot message yourself")

    with transaction(db):
        get_active_user(db, recipient_id)
        if is_blocked_between(db, caller_id, recipient_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "You cannot message this user")
        message = Message(sender_id=caller_id, recipient_id=recipient_id, content=text)
        db.add(message)

    logger.info("message_sent", **safe_kv(message_id=str(message.id), content_chars=len(text)))

    notify(
        handle,
        recipient_id=recipient_id,
        actor_id=caller_id,
        notification_type=NotificationType.message,
        reference_type=ReferenceType.message.value,
        reference_id=message.id,
    )
    return MessageOut.model_validate(message)


def get_conversation(handle: DataHandle, other_id: UUID, page: Page) -> list[MessageOut]:
    """One page of the conversation with another user, oldest first.

    The page is selected newest-first (offset 0 is the latest messages) and
    reversed for display. Incoming messages on the page are marked read.

    Raises:
        NotFoundError: If the other user does not exist.
        ForbiddenError: If a block exists in either direction.
    """
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        get_active_user(db, other_id)
        if is_blocked_between(db, caller_id, other_id):
            raise ForbiddenError(ApiErrorCode.E_BLOCKED, "You cannot view this conversation")
        query = (
            select(Message)
            .where(_between(caller_id, other_id), Message.is_deleted == False)  # noqa: E712
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        messages = list(db.execute(query).scalars().all())

        unread_ids = [m.id for m in messages if m.recipient_id == caller_id and not m.is_read]
        if unread_ids:
            db.execute(
                update(Message)
                .where(Message.id.in_(unread_ids))
                .values(is_read=True)
                .execution_options(synchronize_session="fetch")
            )

    messages.reverse()
    return [MessageOut.model_validate(m) for m in messages]


def list_conversations(handle: DataHandle, page: Page) -> list[ConversationOut]:
    """Latest message per counterpart, most recent conversation first."""
    caller_id = handle.require_caller()
    db = handle.db

    other = case(
        (Message.sender_id == caller_id, Message.recipient_id),
        else_=Message.sender_id,
    )
    visible = and_(
        or_(Message.sender_id == caller_id, Message.recipient_id == caller_id),
        Message.is_deleted == False,  # noqa: E712
    )

    latest = (
        select(other.label("other_id"), func.max(Message.created_at).label("last_at"))
        .where(visible)
        .group_by(other)
        .subquery()
    )
    query = (
        select(Message)
        .join(
            latest,
            and_(other == latest.c.other_id, Message.created_at == latest.c.last_at),
        )
        .where(visible, not_block_related(latest.c.other_id, caller_id))
        .order_by(Message.created_at.desc(), Message.id.desc())
    )

    last_by_other: dict[UUID, Message] = {}
    for message in db.execute(query).scalars().all():
        counterpart = message.recipient_id if message.sender_id == caller_id else message.sender_id
        last_by_other.setdefault(counterpart, message)

    window = list(last_by_other.items())[page.offset : page.offset + page.limit]
    if not window:
        return []

    counterpart_ids = [other_id for other_id, _ in window]
    users = load_user_summaries(db, counterpart_ids)
    unread = dict(
        db.execute(
            select(Message.sender_id, func.count())
            .where(
                Message.recipient_id == caller_id,
                Message.sender_id.in_(counterpart_ids),
                Message.is_read == False,  # noqa: E712
                Message.is_deleted == False,  # noqa: E712
            )
            .group_by(Message.sender_id)
        ).all()
    )

    return [
        ConversationOut(
            user=users[other_id],
            last_message=MessageOut.model_validate(message),
            unread_count=int(unread.get(other_id, 0)),
        )
        for other_id, message in window
        if other_id in users
    ]


def edit_message(
    handle: DataHandle, message_id: UUID, content: str, now: datetime | None = None
) -> MessageOut:
    """Edit a sent message within the edit window.

    Raises:
        NotFoundError: If the message does not exist or is deleted.
        ForbiddenError: If the caller is the recipient rather than the sender.
        InvalidRequestError: If the edit window has passed (content is left unchanged).
    """
    caller_id = handle.require_caller()
    db = handle.db
    text = _clean_content(content)
    window_s = get_settings().message_edit_window_s
    current = now or datetime.now(UTC)

    with transaction(db):
        message = _load_own_message(db, caller_id, message_id)
        if current - message.created_at > timedelta(seconds=window_s):
            raise InvalidRequestError(
                ApiErrorCode.E_EDIT_WINDOW_EXPIRED,
                f"Messages can only be edited for {window_s // 60} minutes",
            )
        message.content = text
        message.is_edited = True
        message.updated_at = current

    return MessageOut.model_validate(message)


def delete_message(handle: DataHandle, message_id: UUID) -> None:
    """Soft-delete a message the caller sent."""
    caller_id = handle.require_caller()
    db = handle.db

    with transaction(db):
        message = _load_own_message(db, caller_id, message_id)
        message.is_deleted = True

    logger.info("message_deleted", message_id=str(message_id))


def get_unread_message_count(handle: DataHandle) -> int:
    """Count unread, undeleted messages addressed to the caller."""
    caller_id = handle.require_caller()
    count = handle.db.scalar(
        select(func.count())
        .select_from(Message)
        .where(
            Message.recipient_id == caller_id,
            Message.is_read == False,  # noqa: E712
            Message.is_deleted == False,  # noqa: E712
            not_block_related(Message.sender_id, caller_id),
        )
    )
    return int(count or 0)
