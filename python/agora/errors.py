"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"
    E_INVALID_TOKEN = "E_INVALID_TOKEN"
    E_PROFILE_NOT_FOUND = "E_PROFILE_NOT_FOUND"
    E_ACCOUNT_INACTIVE = "E_ACCOUNT_INACTIVE"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_BLOCKED = "E_BLOCKED"
    E_NOT_AUTHOR = "E_NOT_AUTHOR"
    E_NOT_VISIBLE = "E_NOT_VISIBLE"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_POST_NOT_FOUND = "E_POST_NOT_FOUND"
    E_COMMENT_NOT_FOUND = "E_COMMENT_NOT_FOUND"
    E_STORY_NOT_FOUND = "E_STORY_NOT_FOUND"
    E_MESSAGE_NOT_FOUND = "E_MESSAGE_NOT_FOUND"
    E_NOTIFICATION_NOT_FOUND = "E_NOTIFICATION_NOT_FOUND"
    E_FOLLOW_NOT_FOUND = "E_FOLLOW_NOT_FOUND"
    E_BLOCK_NOT_FOUND = "E_BLOCK_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_PAGINATION = "E_INVALID_PAGINATION"
    E_USERNAME_INVALID = "E_USERNAME_INVALID"
    E_SELF_ACTION = "E_SELF_ACTION"
    E_CONTENT_REQUIRED = "E_CONTENT_REQUIRED"
    E_CONTENT_TOO_LONG = "E_CONTENT_TOO_LONG"
    E_PARENT_MISMATCH = "E_PARENT_MISMATCH"
    E_EDIT_WINDOW_EXPIRED = "E_EDIT_WINDOW_EXPIRED"

    # Conflict errors (409)
    E_CONFLICT = "E_CONFLICT"
    E_USERNAME_TAKEN = "E_USERNAME_TAKEN"
    E_PROFILE_EXISTS = "E_PROFILE_EXISTS"
    E_ALREADY_FOLLOWING = "E_ALREADY_FOLLOWING"
    E_ALREADY_BLOCKED = "E_ALREADY_BLOCKED"
    E_ALREADY_LIKED = "E_ALREADY_LIKED"
    E_ALREADY_BOOKMARKED = "E_ALREADY_BOOKMARKED"
    E_ALREADY_SHARED = "E_ALREADY_SHARED"

    # Rate limiting (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_INVALID_TOKEN: 401,
    ApiErrorCode.E_PROFILE_NOT_FOUND: 401,
    ApiErrorCode.E_ACCOUNT_INACTIVE: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_BLOCKED: 403,
    ApiErrorCode.E_NOT_AUTHOR: 403,
    ApiErrorCode.E_NOT_VISIBLE: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_POST_NOT_FOUND: 404,
    ApiErrorCode.E_COMMENT_NOT_FOUND: 404,
    ApiErrorCode.E_STORY_NOT_FOUND: 404,
    ApiErrorCode.E_MESSAGE_NOT_FOUND: 404,
    ApiErrorCode.E_NOTIFICATION_NOT_FOUND: 404,
    ApiErrorCode.E_FOLLOW_NOT_FOUND: 404,
    ApiErrorCode.E_BLOCK_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_PAGINATION: 400,
    ApiErrorCode.E_USERNAME_INVALID: 400,
    ApiErrorCode.E_SELF_ACTION: 400,
    ApiErrorCode.E_CONTENT_REQUIRED: 400,
    ApiErrorCode.E_CONTENT_TOO_LONG: 400,
    ApiErrorCode.E_PARENT_MISMATCH: 400,
    ApiErrorCode.E_EDIT_WINDOW_EXPIRED: 400,
    ApiErrorCode.E_CONFLICT: 409,
    ApiErrorCode.E_USERNAME_TAKEN: 409,
    ApiErrorCode.E_PROFILE_EXISTS: 409,
    ApiErrorCode.E_ALREADY_FOLLOWING: 409,
    ApiErrorCode.E_ALREADY_BLOCKED: 409,
    ApiErrorCode.E_ALREADY_LIKED: 409,
    ApiErrorCode.E_ALREADY_BOOKMARKED: 409,
    ApiErrorCode.E_ALREADY_SHARED: 409,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error (ownership, block, or visibility)."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class UnauthenticatedError(ApiError):
    """Missing, invalid, or expired credentials."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_UNAUTHENTICATED,
        message: str = "Authentication required",
    ):
        super().__init__(code, message)


class ConflictError(ApiError):
    """Uniqueness violation (the row already exists)."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_CONFLICT, message: str = "Resource already exists"
    ):
        super().__init__(code, message)
