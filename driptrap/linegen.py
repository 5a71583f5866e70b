"""Garbage banner line generator.

Lines look like the pre-banner text a server is allowed to send before its
protocol identification string: printable ASCII terminated by CR LF. They
are produced by a 128-bit linear congruential generator so a given seed
always yields the same sequence.
"""

from __future__ import annotations

import time

MULTIPLIER = 1103515245
INCREMENT = 12345
STATE_MASK = (1 << 128) - 1

# Clients treat a line starting with this as the real protocol banner.
BANNER_PREFIX = b"SSH-"

PRINTABLE_FIRST = 32
PRINTABLE_COUNT = 95
MIN_LENGTH = 3


def seed_from_clock() -> int:
    """Seed taken from the high-resolution clock at connection time."""
    return time.perf_counter_ns() & STATE_MASK


def scrub_banner_prefix(line: bytearray) -> bytearray:
    """Corrupt a line that would otherwise pass for a protocol banner."""
    if line[:4] == BANNER_PREFIX:
        line[0] = ord("X")
    return line


class LineGenerator:
    """Deterministic drip line source.

    Every call to :meth:`next_line` advances the internal state; two
    generators built from the same seed produce identical output.
    """

    def __init__(self, seed: int = 0) -> None:
        self.state = seed & STATE_MASK

    def draw(self) -> int:
        """Advance the state and return a 20-bit value."""
        self.state = (self.state * MULTIPLIER + INCREMENT) & STATE_MASK
        return (self.state >> 16) & 0xFFFFF

    def next_line(self, max_len: int) -> bytes:
        """Return one line whose length lies in ``[3, max_len]``."""
        if max_len < MIN_LENGTH:
            raise ValueError(f"max_len must be at least {MIN_LENGTH}, got {max_len}")

        length = MIN_LENGTH + self.draw() % (max_len - 2)
        line = bytearray(length)
        for i in range(length - 2):
            line[i] = PRINTABLE_FIRST + self.draw() % PRINTABLE_COUNT
        line[-2:] = b"\r\n"
        return bytes(scrub_banner_prefix(line))
