"""UI-facing text outputs shared between lanes and front ends."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class TextField:
    """A named, mutable piece of text shown to the user."""

    name: str
    value: str = ""

    def append(self, text: str) -> None:
        self.value += text

    def clear(self) -> None:
        self.value = ""
