"""Social domain exports."""

from . import audit, policy, service, sockets  # noqa: F401
from .models import (  # noqa: F401
	FRIEND_CODE_LENGTH,
	REQUEST_PER_DAY,
	REQUEST_PER_MINUTE,
	FriendRequestStatus,
)
from .schemas import FriendRequestSend, FriendRequestSummary, FriendRow  # noqa: F401
