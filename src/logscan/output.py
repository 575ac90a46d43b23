"""
Match reporting.

Matched lines go to stdout, one per line, flushed as they are found so the
output can be piped while a scan is still running. Everything else
(telemetry, diagnostics) goes through logging on stderr.
"""

import sys
from typing import Protocol, TextIO


class MatchSink(Protocol):
    def report_match(self, uri: str, line: str) -> None: ...


class ConsoleOutput:
    """Write matched lines to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None, with_uri: bool = False):
        self._stream = stream
        self.with_uri = with_uri
        self.matches = 0

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so redirected/captured stdout is honoured
        return self._stream or sys.stdout

    def report_match(self, uri: str, line: str) -> None:
        self.matches += 1
        text = f"{uri}\t{line}" if self.with_uri else line
        print(text, file=self.stream, flush=True)


__all__ = ["MatchSink", "ConsoleOutput"]
