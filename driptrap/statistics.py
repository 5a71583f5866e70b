"""Connection statistics for driptrap.

All counters live in one Statistics object owned by the aggregator task.
Sessions and the server never touch it directly: they send events through
an unbounded multi-producer channel. Each producer holds its own
EventSender handle, and the channel reports itself closed once every handle
has been released. The aggregator therefore finishes (and logs its final
summary) only after the last session and the server are gone.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewConnection:
    pass


@dataclass(frozen=True)
class BytesSent:
    count: int


@dataclass(frozen=True)
class ConnectionClosed:
    pass


@dataclass(frozen=True)
class DumpLog:
    """Ask the aggregator to log a summary right away."""


StatisticEvent = Union[NewConnection, BytesSent, ConnectionClosed, DumpLog]


class ChannelClosedError(RuntimeError):
    """An event was sent on a released handle or a closed channel."""


_CLOSED = object()


class _Channel:
    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.senders = 0
        self.closed = False

    def release(self) -> None:
        self.senders -= 1
        if self.senders == 0:
            self.closed = True
            self.queue.put_nowait(_CLOSED)


class EventSender:
    """One producer handle. Clone it for every new producer; close it when
    the producer is done."""

    def __init__(self, channel: _Channel) -> None:
        if channel.closed:
            raise ChannelClosedError("statistics channel is closed")
        self._channel = channel
        self._released = False
        channel.senders += 1

    @property
    def released(self) -> bool:
        return self._released

    def clone(self) -> "EventSender":
        if self._released:
            raise ChannelClosedError("cannot clone a released sender")
        return EventSender(self._channel)

    def send(self, event: StatisticEvent) -> None:
        if self._released or self._channel.closed:
            raise ChannelClosedError(f"cannot send {event!r}: sender released")
        self._channel.queue.put_nowait(event)

    def close(self) -> None:
        """Release this handle. Safe to call more than once."""
        if not self._released:
            self._released = True
            self._channel.release()

    def __enter__(self) -> "EventSender":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class EventReceiver:
    """Single consumer end of the statistics channel."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel
        self._done = False

    async def recv(self) -> Optional[StatisticEvent]:
        """Return the next event, or None once every sender is released
        and the backlog is drained."""
        if self._done:
            return None
        event = await self._channel.queue.get()
        if event is _CLOSED:
            self._done = True
            return None
        return event


def open_channel() -> Tuple[EventSender, EventReceiver]:
    """Create a channel with one sender handle and its receiver."""
    channel = _Channel()
    return EventSender(channel), EventReceiver(channel)


@dataclass
class Statistics:
    """Counters for the lifetime of the process."""

    start: float = field(default_factory=time.monotonic)
    current_connections: int = 0
    total_connections: int = 0
    total_bytes_sent: int = 0

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start

    def apply(self, event: StatisticEvent) -> None:
        if isinstance(event, NewConnection):
            self.current_connections += 1
            self.total_connections += 1
        elif isinstance(event, BytesSent):
            self.total_bytes_sent += event.count
        elif isinstance(event, ConnectionClosed):
            self.current_connections -= 1
        elif not isinstance(event, DumpLog):
            raise TypeError(f"Unknown statistic event: {event!r}")

    def summary(self) -> str:
        return "Total connects={}, current connects={}, last {:.3f}s, {} bytes sent".format(
            self.total_connections,
            self.current_connections,
            self.elapsed,
            self.total_bytes_sent,
        )


class StatisticsAggregator:
    """Owns the Statistics and applies events until the channel closes."""

    def __init__(self, receiver: EventReceiver) -> None:
        self._receiver = receiver
        self.stats = Statistics()
        self.finished = False

    async def run(self) -> Statistics:
        while True:
            event = await self._receiver.recv()
            if event is None:
                break
            if isinstance(event, DumpLog):
                LOGGER.info("%s", self.stats.summary())
                continue
            self.stats.apply(event)

        self.finished = True
        LOGGER.info("Gracefully exit, generate statistic information")
        LOGGER.info("%s", self.stats.summary())
        return self.stats
