"""One-way visual command sink."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Protocol

from shadow_prompt.types import (
    ClearText,
    SetPrimaryColor,
    SetSecondaryColor,
    SetText,
    SetVisibility,
    VisualCommand,
)


class FeedbackPresenter(Protocol):
    """Receives overlay commands; the core never reads state back."""

    def send(self, command: VisualCommand) -> None:
        ...


class RecordingPresenter:
    """Keeps the most recent commands for inspection over HTTP and in tests."""

    def __init__(self, *, max_commands: int = 200) -> None:
        self._commands: deque[VisualCommand] = deque(maxlen=max_commands)
        self._lock = threading.Lock()

    def send(self, command: VisualCommand) -> None:
        with self._lock:
            self._commands.append(command)

    @property
    def commands(self) -> list[VisualCommand]:
        with self._lock:
            return list(self._commands)

    def clear(self) -> None:
        with self._lock:
            self._commands.clear()


def describe_command(command: VisualCommand) -> dict[str, Any]:
    """JSON-friendly rendering of a visual command."""
    if isinstance(command, (SetPrimaryColor, SetSecondaryColor)):
        return {"type": type(command).__name__, "color": command.color.to_hex()}
    if isinstance(command, SetText):
        return {"type": "SetText", "text": command.text}
    if isinstance(command, SetVisibility):
        return {"type": "SetVisibility", "visible": command.visible}
    if isinstance(command, ClearText):
        return {"type": "ClearText"}
    raise TypeError(f"Unknown visual command: {command!r}")
