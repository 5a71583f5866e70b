"""Pytest configuration and fixtures for driptrap tests."""

import asyncio
import socket
from pathlib import Path
from typing import Any, Optional

import pytest

from driptrap.config import Config
from driptrap.statistics import open_channel


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that records written bytes."""

    def __init__(self, fail: bool = False, peername: Any = ("203.0.113.7", 40022)):
        self.data = bytearray()
        self.fail = fail
        self.peername = peername
        self.closed = False

    def get_extra_info(self, name: str) -> Any:
        if name == "peername":
            return self.peername
        return None

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        if self.fail:
            raise ConnectionResetError("Connection reset by peer")

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Records drip sends instead of writing to a socket."""

    def __init__(self, fail_after: Optional[int] = None):
        self.address = "198.51.100.1:5555"
        self.fail_after = fail_after
        self.sent = []
        self.closed = False

    async def send(self, max_len: int) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise BrokenPipeError("Broken pipe")
        self.sent.append((asyncio.get_running_loop().time(), max_len))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def events():
    """A sender/receiver pair on a fresh statistics channel."""
    return open_channel()


@pytest.fixture
def free_port() -> int:
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def config_file(tmp_path: Path):
    """Factory writing a TOML config file and returning its path."""
    path = tmp_path / "driptrap.toml"

    def write(text: str) -> Path:
        path.write_text(text, encoding="utf-8")
        return path

    return write


@pytest.fixture
def local_config() -> Config:
    """Config bound to an ephemeral loopback port with a fast drip."""
    return Config(host="127.0.0.1", port=0, delay_ms=50, max_line_length=16)
