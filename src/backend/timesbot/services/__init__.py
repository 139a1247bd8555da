"""
Time accounting, storage and reply helpers behind the Slack endpoints.
"""

from .accounting import CompletedTask, InvalidBackDate, OpenTask, Owner  # noqa: F401
from .command_parser import Command, parse_command  # noqa: F401
from .session_store import SessionStore, StorageFailure  # noqa: F401
