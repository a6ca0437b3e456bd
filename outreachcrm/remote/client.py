"""
Remote Client - request/response access to the remote store.

The remote store is a black box reached over HTTP:

    GET    {base}/api/ping
    GET    {base}/api/sync/all          -> {contacts: [...], logs: [...]}
    POST   {base}/api/sync              <- {contacts: [...], logs: [...]}  (upsert by id)
    POST   {base}/api/auth/login        -> {user: {...}}
    GET    {base}/api/users
    POST   {base}/api/contacts | /api/logs | /api/users                   (upsert by id)
    PATCH  {base}/api/users/:id
    DELETE {base}/api/contacts/:id | /api/logs/:id | /api/users/:id

Every call carries a bounded timeout. Failures raise RemoteError; callers in
the sync engine decide whether to swallow them.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from outreachcrm.config import config
from outreachcrm.models import AppUser, Company, EmailLog

logger = logging.getLogger(__name__)


class RemoteError(RuntimeError):
    """Transport failure or non-success status from the remote store."""


class AuthenticationError(RuntimeError):
    """Login could not produce a server-verified identity."""


class RemoteClient:
    """
    Thin HTTP wrapper. The base address is resolved per call through
    base_provider so the client follows whichever endpoint the prober chose.
    """

    def __init__(
        self,
        base_provider: Callable[[], str] = None,
        session: requests.Session = None,
        timeout: float = None,
    ):
        self._base_provider = base_provider or (lambda: config.PRIMARY_API_BASE)
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT_SECONDS

    @property
    def base(self) -> str:
        return self._base_provider()

    def _request(self, method: str, path: str, base: str = None, **kwargs) -> requests.Response:
        url = f"{base if base is not None else self.base}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"{method} {url} failed: {e}") from e
        if not response.ok:
            raise RemoteError(f"{method} {url} returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON from {response.url}: {e}") from e

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    def ping(self, base: str) -> bool:
        """True on a 2xx from {base}/api/ping. Never raises."""
        try:
            self._request('GET', '/api/ping', base=base)
            return True
        except RemoteError as e:
            logger.debug(f"Ping to '{base or '(primary)'}' failed: {e}")
            return False

    # =========================================================================
    # FULL SNAPSHOT
    # =========================================================================

    def fetch_snapshot(self) -> Tuple[List[Company], List[EmailLog]]:
        data = self._json(self._request('GET', '/api/sync/all'))
        if not isinstance(data, dict):
            raise RemoteError("Snapshot response is not an object")
        try:
            contacts = [Company.from_dict(c) for c in data.get('contacts') or []]
            logs = [EmailLog.from_dict(l) for l in data.get('logs') or []]
        except (AttributeError, TypeError) as e:
            raise RemoteError(f"Malformed snapshot: {e}") from e
        return contacts, logs

    def push_snapshot(self, contacts: List[Company], logs: List[EmailLog]) -> None:
        self._request('POST', '/api/sync', json={
            'contacts': [c.to_dict() for c in contacts],
            'logs': [l.to_dict() for l in logs],
        })

    # =========================================================================
    # AUTH & USERS
    # =========================================================================

    def login(self, username: str, password: str) -> Optional[AppUser]:
        """
        Returns the user on success, None on rejected credentials.
        Raises RemoteError when the server could not be asked.
        """
        url = f"{self.base}/api/auth/login"
        try:
            response = self.session.post(
                url, json={'username': username, 'password': password}, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"POST {url} failed: {e}") from e

        if not response.ok:
            logger.info(f"Login rejected for '{username}' (HTTP {response.status_code})")
            return None

        body = self._json(response)
        user = body.get('user') if isinstance(body, dict) else None
        if not isinstance(user, dict):
            logger.warning("Login response carried no user object")
            return None
        return AppUser.from_dict(user)

    def fetch_users(self) -> List[AppUser]:
        data = self._json(self._request('GET', '/api/users'))
        if not isinstance(data, list):
            raise RemoteError("Users response is not a list")
        users = [AppUser.from_dict(u) for u in data]
        for u in users:
            u.password = None
        return users

    def create_user(self, user: AppUser) -> None:
        self._request('POST', '/api/users', json=user.to_dict())

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> None:
        self._request('PATCH', f'/api/users/{user_id}', json=updates)

    def delete_user(self, user_id: str) -> None:
        self._request('DELETE', f'/api/users/{user_id}')

    # =========================================================================
    # SINGLE-ENTITY PROPAGATION
    # =========================================================================

    def upsert_contact(self, company: Company) -> None:
        self._request('POST', '/api/contacts', json=company.to_dict())

    def delete_contact(self, company_id: str) -> None:
        """Server cascades the delete to the company's logs."""
        self._request('DELETE', f'/api/contacts/{company_id}')

    def upsert_log(self, log: EmailLog) -> None:
        self._request('POST', '/api/logs', json=log.to_dict())

    def delete_log(self, log_id: str) -> None:
        self._request('DELETE', f'/api/logs/{log_id}')
