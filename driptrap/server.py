"""Tarpit server for driptrap.

TarpitServer owns the listening socket, starts one drip task per accepted
connection, and runs the control loop that reacts to terminate, reload and
dump-statistics requests.

Shutdown order:
1. stop accepting and publish the exit-marked Config;
2. wait for the signal translator task and stop the periodic summary;
3. release the server's own statistics handle, then wait for the
   aggregator. The aggregator only finishes after every session has
   released its handle too, so its final summary covers every connection.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional, Set

from .config import Config, reload_config
from .drip import drip
from .session import Session
from .signals import ControlEvent, SignalTranslator
from .statistics import (
    DumpLog,
    NewConnection,
    Statistics,
    StatisticsAggregator,
    open_channel,
)
from .store import ConfigStore

LOGGER = logging.getLogger(__name__)


def create_listening_socket(host: str, port: int) -> socket.socket:
    """Create, bind, and listen on a non-blocking TCP socket.

    Caller is responsible for closing the socket.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(100)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class TarpitServer:
    """Accept loop, session spawner and shutdown coordinator."""

    def __init__(
        self,
        config: Config,
        install_signals: bool = True,
        stats_interval: Optional[float] = None,
    ) -> None:
        self.config = config
        self.store = ConfigStore(config)
        self.control: asyncio.Queue = asyncio.Queue()
        self._install_signals = install_signals
        self._stats_interval = stats_interval
        self._stats_task: Optional[asyncio.Task] = None
        self._events, receiver = open_channel()
        self.aggregator = StatisticsAggregator(receiver)
        self._listener: Optional[asyncio.AbstractServer] = None
        self._signals: Optional[SignalTranslator] = None
        self._signal_task: Optional[asyncio.Task] = None
        self._aggregator_task: Optional[asyncio.Task] = None
        self._sessions: Set[asyncio.Task] = set()

    @property
    def started(self) -> bool:
        return self._aggregator_task is not None

    @property
    def port(self) -> int:
        """Port the listener is actually bound to."""
        if self._listener is None or not self._listener.sockets:
            raise RuntimeError("server is not listening")
        return self._listener.sockets[0].getsockname()[1]

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def _listen(self, config: Config) -> asyncio.AbstractServer:
        sock = create_listening_socket(config.host, config.port)
        listener = await asyncio.start_server(self._accept, sock=sock)
        LOGGER.info(
            "Listening on %s:%d",
            config.host,
            listener.sockets[0].getsockname()[1],
        )
        return listener

    def _accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        # Runs synchronously from connection_made, so accept and spawn are one step.
        if self.store.current().exit:
            writer.close()
            return

        events = self._events.clone()
        events.send(NewConnection())
        session = Session(writer, events)
        LOGGER.info("Accept from %s", session.address)

        task = asyncio.create_task(drip(session, self.store.subscribe()))
        self._sessions.add(task)
        task.add_done_callback(self._sessions.discard)

    async def start(self) -> None:
        """Bind the listener and start the background tasks.

        Raises:
            OSError: if the configured port cannot be bound.
        """
        if self.started:
            return
        self._listener = await self._listen(self.config)
        self._aggregator_task = asyncio.create_task(self.aggregator.run())
        if self._install_signals:
            self._signals = SignalTranslator(self.control)
            self._signals.install()
            self._signal_task = asyncio.create_task(self._signals.run())
        if self._stats_interval is not None and self._stats_interval > 0:
            self._stats_task = asyncio.create_task(self._dump_periodically(self._stats_interval))

    async def _dump_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._events.send(DumpLog())

    def request(self, event: ControlEvent) -> None:
        """Queue a control event as if the matching signal had arrived."""
        self.control.put_nowait(event)

    async def reload(self) -> bool:
        """Re-read the config file and publish the result.

        All or nothing: if the new address cannot be bound, the previous
        listener and Config stay in effect.
        """
        old = self.config
        new = reload_config(old)
        if new == old:
            LOGGER.info("Reload left config unchanged %s", old)
            return True

        bound_port = self.port
        if (new.host, new.port) != (old.host, bound_port):
            try:
                listener = await self._listen(new)
            except OSError as exc:
                LOGGER.error(
                    "Reload failed, cannot bind %s:%d (%s), keeping %s",
                    new.host,
                    new.port,
                    exc,
                    old,
                )
                return False
            self._listener.close()
            self._listener = listener
            LOGGER.info("Rebound listener from port %d to %d", bound_port, new.port)

        self.config = new
        self.store.publish(new)
        LOGGER.info("Reloaded config %s", new)
        return True

    async def run(self) -> Statistics:
        """Serve until a terminate request, then drain and return the final
        statistics."""
        await self.start()

        while True:
            event = await self.control.get()
            if event is ControlEvent.TERMINATE:
                break
            if event is ControlEvent.RELOAD:
                await self.reload()
            elif event is ControlEvent.DUMP_STATS:
                self._events.send(DumpLog())

        return await self.shutdown()

    async def shutdown(self) -> Statistics:
        LOGGER.info("Shutting down, waiting for %d sessions", self.active_sessions)
        self._listener.close()
        self.store.publish(self.config.exiting())

        if self._signals is not None:
            self._signals.close()
            await self._signal_task

        if self._stats_task is not None:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass

        self._events.close()
        stats = await self._aggregator_task
        LOGGER.info("Gracefully exit")
        return stats
