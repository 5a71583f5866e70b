"""Per-connection handle for driptrap.

A Session exclusively owns one accepted connection. It writes drip lines
and keeps the per-connection numbers that end up in the close log line. It
is only ever used from its own drip task, so nothing here is locked.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from .linegen import LineGenerator, seed_from_clock
from .statistics import BytesSent, ConnectionClosed, EventSender

LOGGER = logging.getLogger(__name__)


def format_peer(peername: Any) -> str:
    if not peername:
        return "unknown"
    host, port = peername[0], peername[1]
    if ":" in str(host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class Session:
    """One trapped connection."""

    def __init__(
        self,
        writer: asyncio.StreamWriter,
        events: EventSender,
        seed: Optional[int] = None,
    ) -> None:
        self.writer = writer
        self.events = events
        self.address = format_peer(writer.get_extra_info("peername"))
        self.connect_time = time.monotonic()
        self.bytes_sent = 0
        self.generator = LineGenerator(seed_from_clock() if seed is None else seed)
        self.closed = False

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.connect_time

    async def send(self, max_len: int) -> None:
        """Write one drip line.

        Raises:
            OSError: the peer is gone; the session must not be used again.
        """
        line = self.generator.next_line(max_len)
        self.writer.write(line)
        await self.writer.drain()
        self.bytes_sent += len(line)
        self.events.send(BytesSent(len(line)))
        LOGGER.debug("%d bytes sent to %s", len(line), self.address)

    def summary(self) -> str:
        return "connection from {} last {:.3f}s, {} bytes sent".format(
            self.address, self.elapsed, self.bytes_sent
        )

    def close(self) -> None:
        """Close the socket, report the drop and release the event handle."""
        if self.closed:
            return
        self.closed = True
        LOGGER.info("%s", self.summary())
        if not self.writer.is_closing():
            self.writer.close()
        self.events.send(ConnectionClosed())
        self.events.close()
