"""Per-connection drip loop.

Each accepted connection gets one ``drip`` task. The task waits for
whichever comes first: the next drip deadline or a new Config snapshot.

- Deadline reached: send one line. A write error ends the session.
- New snapshot with ``exit`` set: stop without sending anything else.
- Any other new snapshot: pick up the new line length and, if the delay
  changed, restart the countdown with the new delay. A reload never sends
  a line by itself.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from .session import Session
from .store import ConfigSubscriber

LOGGER = logging.getLogger(__name__)


class DripState(enum.Enum):
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"


async def _wait_for_change(subscriber: ConfigSubscriber, timeout: float) -> bool:
    """Return True if a new snapshot arrived within ``timeout`` seconds."""
    if subscriber.has_changed():
        return True
    if timeout <= 0:
        return False
    try:
        await asyncio.wait_for(subscriber.changed(), timeout)
    except asyncio.TimeoutError:
        return subscriber.has_changed()
    return True


async def drip(session: Session, subscriber: ConfigSubscriber) -> DripState:
    """Feed ``session`` garbage lines until it dies or shutdown is published."""
    loop = asyncio.get_running_loop()
    state = DripState.RUNNING

    config = subscriber.borrow_and_update()
    delay = config.delay
    length = config.max_line_length
    deadline = loop.time()

    try:
        while not config.exit:
            if await _wait_for_change(subscriber, deadline - loop.time()):
                config = subscriber.borrow_and_update()
                if config.exit:
                    break
                length = config.max_line_length
                if config.delay != delay:
                    delay = config.delay
                    deadline = loop.time() + delay
                continue

            try:
                await session.send(length)
            except OSError as exc:
                LOGGER.debug("Write to %s failed: %s", session.address, exc)
                state = DripState.DRAINING
                break
            deadline = max(deadline + delay, loop.time())
    finally:
        session.close()

    LOGGER.debug("Session %s %s -> closed", session.address, state.value)
    return DripState.CLOSED
