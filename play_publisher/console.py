from __future__ import annotations

import sys
from typing import Optional, TextIO


class Console:
    """Line-oriented output for the CI log."""

    def __init__(self, stream: Optional[TextIO] = None, err_stream: Optional[TextIO] = None):
        self._stream = stream
        self._err_stream = err_stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def err_stream(self) -> TextIO:
        if self._err_stream is not None:
            return self._err_stream
        return self._stream if self._stream is not None else sys.stderr

    def print(self, msg: str = "") -> None:
        print(msg, file=self.stream, flush=True)

    def blank(self) -> None:
        self.print(" ")

    def error(self, msg: str) -> None:
        print(msg, file=self.err_stream, flush=True)


def human_readable_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB", "TB"):
        value /= 1024
        if value < 1024 or unit == "TB":
            break
    return f"{value:.2f} {unit}"
