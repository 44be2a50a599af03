"""
Reading Tracker - Privacy Mode
While a user's privacy mode is on, progress events are accepted and dropped.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .config import get_tracker_config


class PrivacyModeProvider(ABC):
    @abstractmethod
    def is_enabled(self, user_id: int) -> bool:
        ...


class InMemoryPrivacyMode(PrivacyModeProvider):
    """Per-user toggle; users that never toggled get the configured default."""

    def __init__(self, default: Optional[bool] = None):
        if default is None:
            default = get_tracker_config().privacy_mode_default
        self.default = default
        self._flags: Dict[int, bool] = {}

    def is_enabled(self, user_id: int) -> bool:
        return self._flags.get(user_id, self.default)

    def enable(self, user_id: int) -> None:
        self._flags[user_id] = True

    def disable(self, user_id: int) -> None:
        self._flags[user_id] = False

    def toggle(self, user_id: int) -> bool:
        self._flags[user_id] = not self.is_enabled(user_id)
        return self._flags[user_id]
