"""Bounded, newest-first record of generated instructions."""

from __future__ import annotations

from collections import deque
from typing import Deque

from navigation.instructions import NavigationInstruction, Priority


class InstructionHistory:
    """Keeps the last ``maxlen`` instructions for display."""

    def __init__(self, maxlen: int = 10) -> None:
        self._items: Deque[NavigationInstruction] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._items)

    def add(self, instruction: NavigationInstruction) -> None:
        self._items.appendleft(instruction)

    def recent(self) -> list[NavigationInstruction]:
        """Newest first."""

        return list(self._items)

    def for_display(self) -> list[NavigationInstruction]:
        """High priority first, then newest first within a priority."""

        return sorted(
            self._items,
            key=lambda item: (item.priority_rank, -item.timestamp.timestamp(), -item.id),
        )

    def primary(self) -> NavigationInstruction | None:
        """The newest high-priority instruction, else the newest one."""

        for item in self._items:
            if item.priority is Priority.HIGH:
                return item
        return self._items[0] if self._items else None

    def clear(self) -> None:
        self._items.clear()
