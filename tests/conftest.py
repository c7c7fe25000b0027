"""pytest configuration for Hydration Bot tests.

This module provides:
- src/ on sys.path so tests use the flat import layout
- Async test markers with @pytest.mark.asyncio
- Shared fakes for the gateway and messaging capabilities
"""

import asyncio
from unittest.mock import MagicMock, AsyncMock
from typing import Dict, List, Optional, Tuple
import sys
from pathlib import Path
import pytest

# Add src/ to Python path for absolute imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

pytest_plugins = ['pytest_asyncio']

from bot.errors import ChannelError, SendError  # noqa: E402


def pytest_configure(config) -> None:
    """Register the asyncio marker so tests can use @pytest.mark.asyncio."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async (deselect with '-m \"not asyncio\"')"
    )


# ════════════════════════════════════════════════════════════════════════════
# FAKE COLLABORATORS
# ════════════════════════════════════════════════════════════════════════════


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """Private channel that records sends and can be told to fail."""

    def __init__(self, user_id: int, fail: bool = False) -> None:
        self.user_id = user_id
        self.fail = fail
        self.sent: List[Tuple[str, bool]] = []

    async def send(self, text: str, read_aloud: bool = False) -> None:
        if self.fail:
            raise SendError(self.user_id, "send rejected")
        self.sent.append((text, read_aloud))


class FakeMessenger:
    """Messaging capability with per-user failure injection."""

    def __init__(self) -> None:
        self.channels: Dict[int, FakeChannel] = {}
        self.unreachable: set = set()
        self.failing_sends: set = set()
        self.hanging: set = set()
        self.opened: List[int] = []

    async def open_private_channel(self, user_id: int) -> FakeChannel:
        self.opened.append(user_id)
        if user_id in self.unreachable:
            raise ChannelError(user_id, "unknown user")
        if user_id in self.hanging:
            await asyncio.sleep(3600)
        channel = self.channels.get(user_id)
        if channel is None:
            channel = FakeChannel(user_id, fail=user_id in self.failing_sends)
            self.channels[user_id] = channel
        return channel

    def sent_to(self, user_id: int) -> List[Tuple[str, bool]]:
        channel = self.channels.get(user_id)
        return channel.sent if channel else []


class FakeGateway:
    """Gateway exposing stop_all()."""

    def __init__(self) -> None:
        self.stop_all = AsyncMock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def mock_ctx() -> MagicMock:
    """discord.ext.commands.Context stand-in with an async send()."""
    ctx: MagicMock = MagicMock()
    ctx.author.id = 1001
    ctx.send = AsyncMock()
    return ctx
