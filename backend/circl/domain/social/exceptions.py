"""Domain-level exceptions for friend requests & friendships."""

from __future__ import annotations

from circl.infra.rate_limit import RateLimitExceeded


class SocialError(Exception):
    """Base class for social feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class RequestConflict(SocialError):
    reason = "conflict"


class RequestAlreadySent(RequestConflict):
    reason = "already_sent"


class AlreadyFriends(RequestConflict):
    reason = "already_friends"


class SelfRequestError(RequestConflict):
    reason = "self_request"


class RequestForbidden(SocialError):
    reason = "forbidden"


class RequestNotFound(SocialError):
    reason = "not_found"


class RequestGone(SocialError):
    reason = "gone"


class FriendRequestRateLimitExceeded(RateLimitExceeded):
    """Raised when request sending hits a quota."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
