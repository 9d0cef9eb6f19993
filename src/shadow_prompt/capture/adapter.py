"""Clipboard and screen-capture boundary."""

from __future__ import annotations

import threading
from typing import Protocol

from shadow_prompt.errors import CaptureError
from shadow_prompt.types import Rect


class CaptureAdapter(Protocol):
    """Clipboard access and OCR over a screen region.

    Implementations live outside the core (OS clipboard, OCR engine). They
    are called from worker threads and from the event thread.
    """

    def read_clipboard(self) -> str | None:
        ...

    def write_clipboard(self, text: str) -> None:
        ...

    def wipe_clipboard(self) -> None:
        ...

    def extract_text_from_region(self, region: Rect) -> str:
        """Return OCR text for `region` or raise `CaptureError`."""
        ...


class InMemoryCaptureAdapter:
    """Process-local clipboard with scripted OCR results.

    Backs the HTTP control surface and tests. `ocr_text` is returned for any
    region; `ocr_error` makes extraction fail instead.
    """

    def __init__(
        self,
        clipboard: str | None = None,
        *,
        ocr_text: str = "",
        ocr_error: str | None = None,
    ) -> None:
        self._clipboard = clipboard
        self.ocr_text = ocr_text
        self.ocr_error = ocr_error
        self.regions: list[Rect] = []
        self.writes: list[str] = []
        self._lock = threading.Lock()

    def read_clipboard(self) -> str | None:
        with self._lock:
            return self._clipboard

    def write_clipboard(self, text: str) -> None:
        with self._lock:
            self._clipboard = text
            self.writes.append(text)

    def wipe_clipboard(self) -> None:
        with self._lock:
            self._clipboard = None

    def extract_text_from_region(self, region: Rect) -> str:
        with self._lock:
            self.regions.append(region)
        if self.ocr_error is not None:
            raise CaptureError(self.ocr_error)
        return self.ocr_text
