"""Standing diagnostic warnings surfaced to administrators."""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Tuple

CHANNEL_NOT_SET = "channel_not_set"
MESSAGE_PERMISSION = "message_permission"


class StateRegistry:
    """Warnings keyed by kind; adding a key again replaces its text."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def add(self, key: str, text: str) -> None:
        self._entries[key] = text

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def items(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self._entries.items())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
