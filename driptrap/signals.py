"""OS signal translation for driptrap.

Signal handlers only record which signal arrived. A translator task turns
signal numbers into ControlEvent values on the server's control queue:

    SIGTERM, SIGINT  -> TERMINATE  (drain sessions and exit)
    SIGHUP           -> RELOAD     (re-read the config file)
    SIGUSR1          -> DUMP_STATS (log a statistics summary)
"""

from __future__ import annotations

import asyncio
import enum
import logging
import signal
from typing import Dict, List, Optional

LOGGER = logging.getLogger(__name__)


class ControlEvent(enum.Enum):
    TERMINATE = "terminate"
    RELOAD = "reload"
    DUMP_STATS = "dump_stats"


SIGNAL_EVENTS: Dict[int, ControlEvent] = {
    signal.SIGTERM: ControlEvent.TERMINATE,
    signal.SIGINT: ControlEvent.TERMINATE,
    signal.SIGHUP: ControlEvent.RELOAD,
    signal.SIGUSR1: ControlEvent.DUMP_STATS,
}


class SignalTranslator:
    """Forward OS signals to a control queue as ControlEvents."""

    def __init__(self, control: asyncio.Queue) -> None:
        self._control = control
        self._raw: asyncio.Queue = asyncio.Queue()
        self._installed: List[int] = []

    def install(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in SIGNAL_EVENTS:
            loop.add_signal_handler(signum, self._raw.put_nowait, signum)
            self._installed.append(signum)

    def close(self) -> None:
        """Remove the handlers and let :meth:`run` finish."""
        loop = asyncio.get_running_loop()
        while self._installed:
            loop.remove_signal_handler(self._installed.pop())
        self._raw.put_nowait(None)

    async def run(self) -> None:
        while True:
            signum: Optional[int] = await self._raw.get()
            if signum is None:
                return
            event = SIGNAL_EVENTS[signum]
            LOGGER.info("Received %s, requesting %s", signal.Signals(signum).name, event.value)
            await self._control.put(event)
            if event is ControlEvent.TERMINATE:
                return
