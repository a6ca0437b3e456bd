"""
Shared fixtures for engine-level tests.

- client: MagicMock standing in for RemoteClient (remote unreachable by default)
- cache: LocalCache on a throwaway SQLite file
- scheduler / executor: ManualScheduler + InlineExecutor so time and
  propagation are fully deterministic
- engine: SyncEngine wired from the above, not yet bootstrapped
- crm: Mutation API over a bootstrapped engine
"""

from unittest.mock import MagicMock

import pytest

from outreachcrm.bus.events import EventBus
from outreachcrm.db.cache import LocalCache
from outreachcrm.engine.connectivity import ConnectivityProber
from outreachcrm.engine.crm import CRM
from outreachcrm.engine.scheduler import InlineExecutor, ManualScheduler
from outreachcrm.engine.sync import SyncEngine
from outreachcrm.remote.client import RemoteClient

PRIMARY = 'http://primary.test'
FALLBACK = 'http://fallback.test'


@pytest.fixture
def bus():
    """Fresh EventBus per test."""
    return EventBus()


@pytest.fixture
def client():
    client = MagicMock(spec=RemoteClient)
    client.ping.return_value = False
    client.fetch_snapshot.return_value = ([], [])
    client.fetch_users.return_value = []
    client.login.return_value = None
    return client


@pytest.fixture
def cache(tmp_path):
    return LocalCache(path=str(tmp_path / 'cache.sqlite3'), namespace='test')


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def prober(client, bus):
    return ConnectivityProber(client, bus, primary_base=PRIMARY, fallback_base=FALLBACK)


@pytest.fixture
def engine(cache, client, prober, bus, scheduler):
    engine = SyncEngine(
        cache=cache,
        client=client,
        prober=prober,
        bus=bus,
        scheduler=scheduler,
        executor=InlineExecutor(),
        heartbeat_seconds=8,
        sync_interval_seconds=30,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def crm(engine):
    engine.bootstrap()
    return CRM(engine)
