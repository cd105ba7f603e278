"""Inputs waiting to be incorporated into the world model."""

from __future__ import annotations

from typing import Iterable


class SubmissionQueue:
    """Unbounded FIFO of user inputs for one lane.

    A lane snapshots the queue when it starts a request and reconciles with the
    same snapshot when the request completes. Entries pushed in between survive
    for the next trigger. Reconciliation matches by value, so two queued entries
    with equal text are both dropped even if only one was sent.
    """

    def __init__(self) -> None:
        self._entries: list[str] = []

    def push(self, text: str) -> None:
        self._entries.append(text)

    def snapshot(self) -> list[str]:
        return list(self._entries)

    def reconcile(self, consumed: Iterable[str]) -> None:
        consumed_values = set(consumed)
        self._entries = [entry for entry in self._entries if entry not in consumed_values]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
