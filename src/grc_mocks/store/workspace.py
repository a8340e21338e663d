"""
In-memory Slack workspace: static channels and users, posted messages and threads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import itertools
import logging
import threading
import time

from ..models.records import extract_record_numbers

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = {
    "C12345": "general",
    "C67890": "risk-management",
    "C54321": "audit",
    "C11111": "compliance-team",
    "C22222": "incident-response",
    "C33333": "vendor-risk",
    "C44444": "regulatory-updates",
    "C55555": "grc-reports",
    "C66666": "control-testing",
}

DEFAULT_USERS = {
    "U12345": "john.doe",
    "U67890": "jane.smith",
    "U54321": "audit.bot",
}

BOT_USER_ID = "U54321"
BOT_ID = "B12345"
ADMIN_USER_ID = "U12345"
GENERAL_CHANNEL_ID = "C12345"


@dataclass
class SlackMessage:
    """A message posted to the mock workspace."""
    channel_id: str
    text: str
    ts: str
    thread_ts: str = ""
    blocks: List[Dict[str, Any]] = field(default_factory=list)
    user: str = BOT_USER_ID
    reactions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        message = {
            "type": "message",
            "user": self.user,
            "text": self.text,
            "ts": self.ts,
        }
        if self.thread_ts:
            message["thread_ts"] = self.thread_ts
        if self.blocks:
            message["blocks"] = self.blocks
        if self.reactions:
            message["reactions"] = [{"name": name, "count": 1} for name in self.reactions]
        return message


class SlackWorkspace:
    """
    Mock Slack workspace state.

    Channels and users are static reference data. Messages are keyed by ts;
    replies are also indexed under their parent ts. Record numbers found in
    top-level message text are mapped to that message so later replies
    about the record can be threaded under it.
    """

    def __init__(
        self,
        channels: Optional[Dict[str, str]] = None,
        users: Optional[Dict[str, str]] = None,
    ):
        self.channels = dict(channels or DEFAULT_CHANNELS)
        self.users = dict(users or DEFAULT_USERS)
        self._messages: Dict[str, SlackMessage] = {}
        self._threads: Dict[str, List[str]] = {}
        self._record_threads: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count()

    def _next_ts(self) -> str:
        # Slack ts values are "<seconds>.<micros>"; the sequence keeps them unique.
        now = time.time()
        seq = next(self._sequence) % 1000
        return f"{int(now)}.{int((now % 1) * 1000):03d}{seq:03d}"

    def resolve_channel(self, channel: str) -> Optional[str]:
        """Channel id for an id, a name, or a #name; None if unknown."""
        channel = channel.strip()
        if channel in self.channels:
            return channel
        name = channel.lstrip("#")
        for channel_id, channel_name in self.channels.items():
            if channel_name == name:
                return channel_id
        return None

    def post(
        self,
        channel_id: str,
        text: str,
        thread_ts: str = "",
        blocks: Optional[List[Dict[str, Any]]] = None,
        user: str = BOT_USER_ID,
    ) -> SlackMessage:
        with self._lock:
            message = SlackMessage(
                channel_id=channel_id,
                text=text,
                ts=self._next_ts(),
                thread_ts=thread_ts,
                blocks=list(blocks or []),
                user=user,
            )
            self._messages[message.ts] = message

            if thread_ts:
                self._threads.setdefault(thread_ts, []).append(message.ts)
            else:
                for number in extract_record_numbers(text):
                    self._record_threads.setdefault(number, message.ts)

        logger.info("Message posted to %s: %s (ts: %s)", channel_id, text[:80], message.ts)
        return message

    def update(
        self,
        ts: str,
        text: str = "",
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[SlackMessage]:
        with self._lock:
            message = self._messages.get(ts)
            if message is None:
                return None
            if text:
                message.text = text
            if blocks is not None:
                message.blocks = list(blocks)
            return message

    def add_reaction(self, ts: str, name: str) -> bool:
        with self._lock:
            message = self._messages.get(ts)
            if message is None:
                return False
            message.reactions.append(name)
            return True

    def get(self, ts: str) -> Optional[SlackMessage]:
        with self._lock:
            return self._messages.get(ts)

    def history(
        self,
        channel_id: str,
        oldest: Optional[float] = None,
        latest: Optional[float] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Top-level messages in a channel, oldest first, with reply counts."""
        with self._lock:
            messages = []
            for ts, message in self._messages.items():
                if message.channel_id != channel_id or message.thread_ts:
                    continue
                if oldest is not None and float(ts) < oldest:
                    continue
                if latest is not None and float(ts) > latest:
                    continue

                entry = message.to_dict()
                replies = self._threads.get(ts)
                if replies:
                    entry["reply_count"] = len(replies)
                    entry["latest_reply"] = replies[-1]
                messages.append(entry)
            return messages[:limit] if limit else messages

    def thread(self, thread_ts: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._messages[ts].to_dict() for ts in self._threads.get(thread_ts, [])]

    def thread_for_record(self, number: str) -> Optional[str]:
        """ts of the first top-level message mentioning a record number."""
        with self._lock:
            return self._record_threads.get(number.upper())

    def message_count(self) -> int:
        with self._lock:
            return len(self._messages)

    def reset(self) -> None:
        with self._lock:
            self._messages.clear()
            self._threads.clear()
            self._record_threads.clear()
        logger.info("Slack workspace reset")

    def user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Slack-shaped user object, or None for an unknown user."""
        name = self.users.get(user_id)
        if name is None:
            return None

        real_name = name.replace(".", " ").title().replace("Bot", "Bot User")
        return {
            "id": user_id,
            "name": name,
            "real_name": real_name,
            "is_admin": user_id == ADMIN_USER_ID,
            "is_bot": user_id == BOT_USER_ID,
            "profile": {
                "real_name": real_name,
                "email": f"{name}@example.com",
                "image_48": "https://via.placeholder.com/48",
                "image_72": "https://via.placeholder.com/72",
            },
        }

    def channel_info(self, channel_id: str) -> Dict[str, Any]:
        now = int(time.time())
        return {
            "id": channel_id,
            "name": self.channels[channel_id],
            "is_channel": True,
            "is_group": False,
            "is_im": False,
            "created": now - 30 * 86400,
            "creator": ADMIN_USER_ID,
            "is_archived": False,
            "is_general": channel_id == GENERAL_CHANNEL_ID,
            "members": list(self.users),
            "topic": {"value": "Channel topic", "creator": ADMIN_USER_ID, "last_set": now - 15 * 86400},
            "purpose": {"value": "Channel purpose", "creator": ADMIN_USER_ID, "last_set": now - 15 * 86400},
        }
