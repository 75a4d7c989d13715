# SQLModel definitions — imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .group import Group, GroupMembership  # noqa: F401
from .video import Video, VideoGroupAccess  # noqa: F401
