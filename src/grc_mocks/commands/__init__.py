"""
Commands Package.

Slack-facing record mutations:
- ButtonAction catalogue shared by notifications and interactions
- CommandRouter for slash commands and button clicks
"""

from .actions import ACTIONS, ButtonAction, actions_for
from .router import USAGE, CommandResult, CommandRouter, split_args

__all__ = [
    "ACTIONS",
    "ButtonAction",
    "CommandResult",
    "CommandRouter",
    "USAGE",
    "actions_for",
    "split_args",
]
