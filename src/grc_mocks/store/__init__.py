"""
Store Package.

In-memory state for the mock servers:
- RecordStore: GRC tables keyed by sys_id
- SlackWorkspace: channels, users, messages and threads
"""

from .tables import NUMBER_OFFSET, RecordStore, utc_now
from .workspace import SlackMessage, SlackWorkspace

__all__ = [
    "NUMBER_OFFSET",
    "RecordStore",
    "SlackMessage",
    "SlackWorkspace",
    "utc_now",
]
