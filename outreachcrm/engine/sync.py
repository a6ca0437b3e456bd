"""
Sync Engine - keeps the local cache converged with the remote store.

Local-first: every write lands in memory and in the local cache before any
network call. The remote store is reached by polling only:

  * bootstrap      probe, load cache (or initialize it empty), push once if online
                   (one-shot CLI commands skip the push)
  * heartbeat      every HEARTBEAT_SECONDS: sample the OS network state, run the
                   online/offline hooks on a change, otherwise re-probe
  * smart_sync     every SYNC_INTERVAL_SECONDS pull the full snapshot and
                   replace local state when it differs
  * login          pull the full snapshot unconditionally, then users
  * propagation    per-entity upsert/delete fired after each local write,
                   never awaited by the caller
  * online/offline OS transition hooks

Remote failures never undo or block local work. They are logged and emitted
as EVENT_SYNC_FAILED; the next tick is the only retry.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, List, Optional

from outreachcrm.bus.events import (
    EventBus, EVENT_DATA_CHANGED, EVENT_STATUS_CHANGED, EVENT_SYNC_FAILED,
)
from outreachcrm.config import config
from outreachcrm.db.cache import LocalCache
from outreachcrm.engine.connectivity import ConnectivityProber
from outreachcrm.engine.scheduler import ThreadScheduler
from outreachcrm.models import AppUser, Company, EmailLog
from outreachcrm.remote.client import AuthenticationError, RemoteClient, RemoteError

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Long-lived sync context. Construct once, call start(), call dispose() on
    shutdown. Tests build isolated instances with a ManualScheduler and an
    InlineExecutor.
    """

    def __init__(
        self,
        cache: LocalCache = None,
        client: RemoteClient = None,
        prober: ConnectivityProber = None,
        bus: EventBus = None,
        scheduler=None,
        executor: Executor = None,
        network_monitor: Callable[[], bool] = None,
        heartbeat_seconds: float = None,
        sync_interval_seconds: float = None,
    ):
        self.bus = bus or EventBus()
        self.cache = cache or LocalCache()
        self.client = client or RemoteClient(base_provider=lambda: self.prober.api_base)
        self.prober = prober or ConnectivityProber(self.client, self.bus)
        self.scheduler = scheduler or ThreadScheduler()
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix='outreachcrm-push')
        self.network_monitor = network_monitor or (lambda: True)
        self.heartbeat_seconds = heartbeat_seconds or config.HEARTBEAT_SECONDS
        self.sync_interval_seconds = sync_interval_seconds or config.SYNC_INTERVAL_SECONDS

        # companies + logs + users are guarded together
        self.lock = threading.RLock()
        self.companies: List[Company] = []
        self.logs: List[EmailLog] = []
        self.users: List[AppUser] = []
        self.current_user: Optional[AppUser] = None
        self._network_up: Optional[bool] = None

        self._jobs = []
        self.started = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Bootstrap, then register the heartbeat and reconciliation jobs."""
        if self.started:
            return
        self.bootstrap()
        self._jobs.append(self.scheduler.every(self.heartbeat_seconds, self.heartbeat, name='heartbeat'))
        self._jobs.append(self.scheduler.every(self.sync_interval_seconds, self.smart_sync, name='smart_sync'))
        self.started = True
        logger.info(
            f"Sync engine started (heartbeat {self.heartbeat_seconds}s, "
            f"reconcile {self.sync_interval_seconds}s)"
        )

    def dispose(self) -> None:
        for handle in self._jobs:
            self.scheduler.cancel(handle)
        self._jobs = []
        self.executor.shutdown(wait=False)
        self.started = False
        logger.info("Sync engine disposed")

    def bootstrap(self, push: bool = True) -> None:
        self._network_up = bool(self.network_monitor())
        self.prober.probe()

        snapshot = self.cache.load()
        with self.lock:
            self.companies = snapshot.companies
            self.logs = snapshot.logs
            self.users = snapshot.users
            if not snapshot.initialized:
                self.persist()
        logger.info(
            f"Loaded {len(snapshot.companies)} companies and {len(snapshot.logs)} logs from local cache"
        )

        # Assert writes made while offline in an earlier session
        if push and self.get_remote_status():
            self.push_all()

    # =========================================================================
    # STATUS & SUBSCRIPTIONS
    # =========================================================================

    def get_remote_status(self) -> bool:
        return self.prober.available

    @property
    def api_base(self) -> str:
        return self.prober.api_base

    def on_status_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """callback(available) after every probe and offline event. Returns unsubscribe."""
        return self.bus.on(EVENT_STATUS_CHANGED, lambda data: callback(data['available']))

    def on_data_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        """callback() whenever a pull replaced local state. Returns unsubscribe."""
        return self.bus.on(EVENT_DATA_CHANGED, lambda data: callback())

    def on_sync_failed(self, callback: Callable[[str, str], None]) -> Callable[[], None]:
        """callback(operation, error) for every swallowed remote failure. Returns unsubscribe."""
        return self.bus.on(EVENT_SYNC_FAILED, lambda data: callback(data['operation'], data['error']))

    # =========================================================================
    # LOCAL STATE
    # =========================================================================

    def persist(self) -> None:
        with self.lock:
            self.cache.persist(self.companies, self.logs, self.users)

    @contextmanager
    def transaction(self):
        """
        Hold the collection lock for a local mutation and persist on exit.
        Nothing is persisted if the body raises.
        """
        with self.lock:
            yield self
            self.persist()

    # =========================================================================
    # PERIODIC JOBS
    # =========================================================================

    def heartbeat(self) -> bool:
        """
        A change in the OS network state runs handle_online() / handle_offline().
        Otherwise re-probe, unless the OS reports no network at all.
        Returns the remote status afterwards.
        """
        up = bool(self.network_monitor())
        previous, self._network_up = self._network_up, up

        if previous is not None and up != previous:
            if up:
                self.handle_online()
            else:
                self.handle_offline()
            return self.get_remote_status()

        if not up:
            return False
        return self.prober.probe()

    def smart_sync(self) -> bool:
        """
        Reconciliation pull. Replaces local state only when the remote snapshot
        differs; persists without pushing back. Returns True if local changed.
        """
        if not self.get_remote_status() or not self.network_monitor():
            return False

        try:
            companies, logs = self.client.fetch_snapshot()
        except RemoteError as e:
            self._report_failure('smart_sync', e)
            return False

        with self.lock:
            if companies == self.companies and logs == self.logs:
                logger.debug("Reconciliation: no remote changes")
                return False
            self.companies = companies
            self.logs = logs
            self.persist()

        logger.info("Reconciliation: remote changed, local state replaced")
        self.bus.emit(EVENT_DATA_CHANGED, {'source': 'reconcile'})
        return True

    # =========================================================================
    # FULL SYNC
    # =========================================================================

    def pull_full_sync(self) -> bool:
        """Unconditionally replace local companies/logs with the remote snapshot."""
        if not self.get_remote_status():
            return False

        try:
            companies, logs = self.client.fetch_snapshot()
        except RemoteError as e:
            self._report_failure('pull_full_sync', e)
            return False

        with self.lock:
            self.companies = companies
            self.logs = logs
            self.persist()

        logger.info(f"Full sync pulled: {len(companies)} companies, {len(logs)} logs")
        self.bus.emit(EVENT_DATA_CHANGED, {'source': 'login_pull'})
        return True

    def push_all(self) -> bool:
        """Upsert every local company and log on the remote store."""
        if not self.get_remote_status():
            return False

        with self.lock:
            companies = list(self.companies)
            logs = list(self.logs)

        try:
            self.client.push_snapshot(companies, logs)
        except RemoteError as e:
            self._report_failure('push_all', e)
            return False

        logger.info(f"Pushed {len(companies)} companies and {len(logs)} logs to remote")
        return True

    def sync_users(self) -> bool:
        if not self.get_remote_status():
            return False

        try:
            users = self.client.fetch_users()
        except RemoteError as e:
            self._report_failure('sync_users', e)
            return False

        with self.lock:
            self.users = users
            self.persist()
        return True

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    def authenticate(self, username: str, password: str) -> Optional[AppUser]:
        """
        Login requires the remote store. Raises AuthenticationError when it
        cannot be reached; returns None on rejected credentials.
        """
        if not self.prober.probe():
            raise AuthenticationError("Internet connection required for login.")

        try:
            user = self.client.login(username, password)
        except RemoteError as e:
            self._report_failure('authenticate', e)
            raise AuthenticationError(f"Login request failed: {e}") from e

        if user is None:
            return None

        self.pull_full_sync()

        if user.is_admin:
            self.sync_users()
        else:
            with self.lock:
                self.users = [user]
                self.persist()

        self.current_user = user
        logger.info(f"Authenticated '{user.username}' ({user.role})")
        return user

    def logout(self) -> None:
        with self.lock:
            self.current_user = None
            self.users = []
            self.persist()
        logger.info("Logged out")

    # =========================================================================
    # OS NETWORK EVENTS
    # =========================================================================

    def handle_online(self) -> None:
        logger.info("Network online, verifying connection and syncing")
        if self.prober.probe():
            self.push_all()

    def handle_offline(self) -> None:
        self.prober.mark_offline()

    # =========================================================================
    # WRITE PROPAGATION
    # =========================================================================

    def propagate(self, operation: str, fn: Callable, *args) -> Optional[Future]:
        """
        Fire fn(*args) at the remote store without waiting. Skipped while
        offline. Failures are reported, never raised.
        """
        if not self.get_remote_status():
            logger.debug(f"Offline, skipped propagation of {operation}")
            return None

        def _run():
            try:
                fn(*args)
            except Exception as e:
                self._report_failure(operation, e)

        return self.executor.submit(_run)

    def _report_failure(self, operation: str, error: Exception) -> None:
        logger.warning(f"Remote {operation} failed: {error}")
        self.bus.emit(EVENT_SYNC_FAILED, {'operation': operation, 'error': str(error)})
