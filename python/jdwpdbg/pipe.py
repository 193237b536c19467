"""Text side channel used to synchronise with the debuggee.

The debuggee prints one signal per line on its stdout and reads commands from
its stdin.  Only a small vocabulary is exchanged (``ready``, ``error``,
``quit``); the binary JDWP stream never travels over this channel.
"""

from __future__ import annotations

import logging
from typing import Optional, TextIO

LOGGER = logging.getLogger("jdwpdbg.pipe")

READY = "ready"
ERROR = "error"
QUIT = "quit"

SIGNALS = (READY, ERROR, QUIT)


class IOPipe:
    """Line oriented channel over a pair of text streams."""

    def __init__(self, reader: TextIO, writer: TextIO) -> None:
        self._reader = reader
        self._writer = writer

    def readln(self) -> Optional[str]:
        """Return the next line without its terminator, or ``None`` on EOF."""
        try:
            line = self._reader.readline()
        except (OSError, ValueError) as exc:
            LOGGER.debug("side channel read failed: %s", exc)
            return None
        if not line:
            return None
        return line.rstrip("\r\n")

    def println(self, line: str) -> None:
        self._writer.write(line + "\n")
        self._writer.flush()

    def close(self) -> None:
        for stream in (self._writer, self._reader):
            try:
                stream.close()
            except (OSError, ValueError):
                pass
