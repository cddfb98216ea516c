"""Profile bootstrap service.

Creates the profile row for a verified identity on first login. The profile
id is the identity provider's subject, so one identity owns at most one
profile.
"""

import logging

from agora.db.handles import DataHandle
from agora.db.models import User
from agora.errors import ApiErrorCode, ConflictError, InvalidRequestError
from agora.schemas.user import CreateProfileRequest, UserProfileOut
from agora.services.store import insert_or_reject_duplicate
from agora.services.text import is_valid_username

logger = logging.getLogger(__name__)


def create_profile(handle: DataHandle, request: CreateProfileRequest) -> UserProfileOut:
    """Create the caller's profile.

    Race-safe: the primary key and the unique username are the authority;
    concurrent attempts converge to one row and the loser gets 409.

    Args:
        handle: Handle bound to the verified identity (profile not required).
        request: Username and optional profile fields.

    Returns:
        The new profile.

    Raises:
        InvalidRequestError: If the username is not 3-30 chars of [A-Za-z0-9_].
        ConflictError: If the identity already has a profile or the username is taken.
    """
    identity_id = handle.require_caller()
    db = handle.db

    username = request.username.strip()
    if not is_valid_username(username):
        raise InvalidRequestError(
            ApiErrorCode.E_USERNAME_INVALID,
            "Username must be 3-30 characters of letters, numbers, and underscores",
        )
    username = username.lower()

    if db.get(User, identity_id) is not None:
        raise ConflictError(ApiErrorCode.E_PROFILE_EXISTS, "Profile already exists")

    user = User(
        id=identity_id,
        username=username,
        display_name=(request.display_name or "").strip() or None,
        bio=(request.bio or "").strip() or None,
        avatar_url=request.avatar_url,
    )
    try:
        insert_or_reject_duplicate(db, user, ApiErrorCode.E_USERNAME_TAKEN, "Username is taken")
        db.commit()
    except ConflictError:
        db.rollback()
        raise

    logger.info("profile_created", extra={"user_id": str(identity_id)})
    return UserProfileOut.model_validate(user).model_copy(update={"is_self": True})
