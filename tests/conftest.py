"""Pytest configuration and shared fixtures."""

import pytest

from wabridge.bridge import Bridge
from wabridge.cache import CorrelationCache, ExpiringStore
from wabridge.conversation import STATE_TTL, ConversationStateMachine
from wabridge.cooldown import DEFAULT_RETENTION, CooldownGate
from wabridge.interfaces import CONNECTED, ControlClient, SourceClient
from wabridge.store import ConfigStore

CONTROL_CHAT = 555


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSource(SourceClient):
    """Records every send; state and contacts are set by the test."""

    def __init__(self):
        self.sent = []
        self.contacts = []
        self.state = CONNECTED
        self.fail_with = None

    async def send(self, address, text):
        self.sent.append((address, text))
        if self.fail_with is not None:
            raise self.fail_with

    async def list_contacts(self):
        return list(self.contacts)

    def connection_state(self):
        return self.state


class FakeControl(ControlClient):
    """Records notifications and media pushed to the operator."""

    def __init__(self):
        self.notifications = []
        self.media = []

    async def notify(self, chat_id, text, buttons=None):
        self.notifications.append((chat_id, text, buttons))

    async def send_media(self, chat_id, kind, data, caption, filename=None):
        self.media.append((chat_id, kind, data, caption, filename))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def control():
    return FakeControl()


@pytest.fixture
def correlation(clock):
    return CorrelationCache(ttl=86400, store=ExpiringStore(86400, clock=clock), clock=clock)


@pytest.fixture
def conversations(correlation, clock):
    return ConversationStateMachine(correlation, store=ExpiringStore(STATE_TTL, clock=clock))


@pytest.fixture
def cooldown(clock):
    return CooldownGate(clock=clock, store=ExpiringStore(DEFAULT_RETENTION, clock=clock))


@pytest.fixture
def config_store(tmp_path):
    store = ConfigStore(str(tmp_path / "config.json"))
    store.load()
    return store


@pytest.fixture
def claimed_store(config_store):
    config_store.save({"control_channel_id": CONTROL_CHAT})
    return config_store


@pytest.fixture
def bridge(source, control, claimed_store, correlation, conversations, cooldown):
    return Bridge(
        source,
        claimed_store,
        correlation,
        conversations,
        cooldown,
        control=control,
        auto_reply_cooldown=3600,
    )
