# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .listing import Listing, ListingMember  # noqa: F401
from .leave_request import LeaveRequest  # noqa: F401
from .payment import Payment, Balance  # noqa: F401
from .session import SessionRecord  # noqa: F401
