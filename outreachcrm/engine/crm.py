"""
CRM Engine - Mutation API over the sync engine's local state.

Every operation updates the in-memory collections and the local cache before
returning; remote propagation is fired afterwards and never awaited. Reads
always come from local state and return copies.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Union

from outreachcrm.bus.events import (
    EVENT_COMPANY_CREATED, EVENT_COMPANY_UPDATED, EVENT_COMPANY_DELETED, EVENT_COMPANIES_IMPORTED,
    EVENT_LOG_CREATED, EVENT_LOG_UPDATED, EVENT_LOG_DELETED,
    EVENT_USER_CREATED, EVENT_USER_UPDATED, EVENT_USER_DELETED,
)
from outreachcrm.engine.sync import SyncEngine
from outreachcrm.models import (
    AppUser, Company, EmailLog, ValidationError,
    EMAIL_TYPES, EMAIL_TYPE_FIRST_TIME, EMAIL_TYPE_FOLLOW_UP, ROLES, ROLE_USER,
    clean_emails, new_id, normalize_email, now_ms, validate_company_draft,
)

logger = logging.getLogger(__name__)

# Allowlists for partial updates; id and creation time are immutable
_COMPANY_FIELDS = {
    'company_name', 'emails', 'phone_number', 'location', 'notes', 'tags', 'is_interested',
}
_LOG_FIELDS = {
    'company_id', 'email_address', 'email_type', 'date_sent', 'note', 'follow_up_date', 'completed',
}
_USER_FIELDS = {'username', 'password', 'role'}


def _validate_columns(updates: Dict[str, Any], allowed: set, entity: str) -> None:
    """Raise ValueError if any key in updates is not an allowed field name."""
    invalid = set(updates.keys()) - allowed
    if invalid:
        raise ValueError(f"Invalid {entity} fields: {invalid}")


def _index_of(items: list, item_id: str) -> Optional[int]:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    return None


@dataclass
class BulkRejection:
    index: int
    field: str
    message: str


@dataclass
class BulkAddResult:
    added: int = 0
    skipped: int = 0
    rejected: List[BulkRejection] = field(default_factory=list)
    companies: List[Company] = field(default_factory=list)


class CRM:
    """Entity operations, atomic from the caller's point of view."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self.bus = engine.bus

    # =========================================================================
    # COMPANY OPERATIONS
    # =========================================================================

    def get_companies(self) -> List[Company]:
        """All companies, newest first."""
        with self.engine.lock:
            companies = copy.deepcopy(self.engine.companies)
        return sorted(companies, key=lambda c: c.created_at, reverse=True)

    def get_company(self, company_id: str) -> Optional[Company]:
        with self.engine.lock:
            for c in self.engine.companies:
                if c.id == company_id:
                    return copy.deepcopy(c)
        logger.debug(f"get_company: company_id={company_id} not found")
        return None

    def add_company(self, company: Company) -> Company:
        """
        Create a company. id and created_at are assigned here.
        Raises ValidationError when the name or emails are missing.
        """
        draft = validate_company_draft(company.to_dict())
        new_company = replace(
            Company.from_dict(draft),
            id=new_id(),
            created_at=now_ms(),
        )

        with self.engine.transaction() as engine:
            engine.companies.append(new_company)

        logger.info(f"Created company {new_company.id}: {new_company.company_name}")
        self.engine.propagate('upsert_contact', self.engine.client.upsert_contact, new_company)
        self.bus.emit(EVENT_COMPANY_CREATED, {'company_id': new_company.id, 'company': new_company})
        return copy.deepcopy(new_company)

    def update_company(self, company_id: str, updates: Dict[str, Any]) -> bool:
        """
        Apply a partial update.
        Returns: True if updated, False if not found
        """
        if not updates:
            return False
        _validate_columns(updates, _COMPANY_FIELDS, 'company')
        if 'company_name' in updates and not str(updates['company_name'] or '').strip():
            raise ValidationError('companyName', 'must be a non-empty string')

        updates = copy.deepcopy(updates)
        if 'emails' in updates:
            updates['emails'] = clean_emails(updates['emails'])
        with self.engine.lock:
            i = _index_of(self.engine.companies, company_id)
            if i is None:
                logger.debug(f"update_company: company_id={company_id} not found")
                return False
            with self.engine.transaction() as engine:
                updated = replace(engine.companies[i], **updates)
                engine.companies[i] = updated

        logger.info(f"Updated company {company_id}: {sorted(updates.keys())}")
        self.engine.propagate('upsert_contact', self.engine.client.upsert_contact, updated)
        self.bus.emit(EVENT_COMPANY_UPDATED, {'company_id': company_id, 'updates': updates})
        return True

    def delete_company(self, company_id: str) -> bool:
        """
        Delete a company and every log referencing it.
        Returns: True if deleted, False if not found
        """
        with self.engine.lock:
            if _index_of(self.engine.companies, company_id) is None:
                logger.debug(f"delete_company: company_id={company_id} not found")
                return False
            with self.engine.transaction() as engine:
                engine.companies = [c for c in engine.companies if c.id != company_id]
                logs_before = len(engine.logs)
                engine.logs = [l for l in engine.logs if l.company_id != company_id]
                removed_logs = logs_before - len(engine.logs)

        logger.info(f"Deleted company {company_id} and {removed_logs} logs")
        self.engine.propagate('delete_contact', self.engine.client.delete_contact, company_id)
        self.bus.emit(EVENT_COMPANY_DELETED, {'company_id': company_id, 'removed_logs': removed_logs})
        return True

    def bulk_add_companies(self, items: Iterable[Union[Company, Dict[str, Any]]]) -> BulkAddResult:
        """
        Import many companies at once. A candidate sharing any email with an
        existing (or earlier imported) company is skipped; a candidate missing
        required fields is rejected with the failing field. Only the newly
        added companies are pushed to the remote store.
        """
        result = BulkAddResult()
        now = now_ms()

        with self.engine.lock:
            known = {normalize_email(e) for c in self.engine.companies for e in c.emails}

            for index, item in enumerate(items):
                data = item.to_dict() if isinstance(item, Company) else item
                try:
                    draft = validate_company_draft(data)
                except ValidationError as e:
                    result.rejected.append(BulkRejection(index, e.field, e.message))
                    continue

                emails = {normalize_email(e) for e in draft['emails']}
                if emails & known:
                    result.skipped += 1
                    continue

                company = replace(Company.from_dict(draft), id=new_id(), created_at=now)
                result.companies.append(company)
                known |= emails
                result.added += 1

            if not result.added:
                return result

            with self.engine.transaction() as engine:
                engine.companies.extend(result.companies)

        logger.info(
            f"Bulk import: {result.added} added, {result.skipped} skipped, "
            f"{len(result.rejected)} rejected"
        )
        self.engine.propagate(
            'bulk_add_companies', self.engine.client.push_snapshot, list(result.companies), []
        )
        self.bus.emit(EVENT_COMPANIES_IMPORTED, {'added': result.added, 'skipped': result.skipped})
        return result

    # =========================================================================
    # LOG OPERATIONS
    # =========================================================================

    def get_logs(self) -> List[EmailLog]:
        """All logs, most recently sent first."""
        with self.engine.lock:
            logs = copy.deepcopy(self.engine.logs)
        return sorted(logs, key=lambda l: l.date_sent, reverse=True)

    def get_logs_for_company(self, company_id: str) -> List[EmailLog]:
        return [l for l in self.get_logs() if l.company_id == company_id]

    def has_received_first_time(self, email: str) -> bool:
        """True iff a First-time log already exists for this address."""
        target = normalize_email(email)
        with self.engine.lock:
            return any(
                normalize_email(l.email_address) == target and l.email_type == EMAIL_TYPE_FIRST_TIME
                for l in self.engine.logs
            )

    def add_log(self, log: EmailLog) -> EmailLog:
        """
        Record a sent email. A Follow-up closes every open log for the same
        address before the new log is inserted.

        Does not re-check the one-First-time-per-address rule; callers guard
        with has_received_first_time().
        """
        if log.email_type not in EMAIL_TYPES:
            raise ValueError(f"Invalid email type '{log.email_type}'. Choose from: {', '.join(EMAIL_TYPES)}")

        new_log = replace(log, id=new_id(), date_sent=log.date_sent or now_ms())
        closed: List[EmailLog] = []

        with self.engine.transaction() as engine:
            if new_log.email_type == EMAIL_TYPE_FOLLOW_UP:
                target = normalize_email(new_log.email_address)
                for i, l in enumerate(engine.logs):
                    if normalize_email(l.email_address) == target and not l.completed:
                        engine.logs[i] = replace(l, completed=True)
                        closed.append(engine.logs[i])
            engine.logs.append(new_log)

        logger.info(
            f"Logged {new_log.email_type} email to {new_log.email_address} "
            f"(company {new_log.company_id}); auto-completed {len(closed)}"
        )
        for l in closed + [new_log]:
            self.engine.propagate('upsert_log', self.engine.client.upsert_log, l)
        self.bus.emit(EVENT_LOG_CREATED, {
            'log_id': new_log.id,
            'company_id': new_log.company_id,
            'log': new_log,
            'auto_completed': [l.id for l in closed],
        })
        return copy.deepcopy(new_log)

    def update_log(self, log_id: str, updates: Dict[str, Any]) -> bool:
        """Returns: True if updated, False if not found"""
        if not updates:
            return False
        _validate_columns(updates, _LOG_FIELDS, 'log')
        if 'email_type' in updates and updates['email_type'] not in EMAIL_TYPES:
            raise ValueError(f"Invalid email type '{updates['email_type']}'")

        with self.engine.lock:
            i = _index_of(self.engine.logs, log_id)
            if i is None:
                logger.debug(f"update_log: log_id={log_id} not found")
                return False
            with self.engine.transaction() as engine:
                updated = replace(engine.logs[i], **updates)
                engine.logs[i] = updated

        logger.info(f"Updated log {log_id}: {sorted(updates.keys())}")
        self.engine.propagate('upsert_log', self.engine.client.upsert_log, updated)
        self.bus.emit(EVENT_LOG_UPDATED, {'log_id': log_id, 'updates': updates})
        return True

    def complete_log(self, log_id: str) -> bool:
        """Close the follow-up obligation carried by a log."""
        return self.update_log(log_id, {'completed': True})

    def delete_log(self, log_id: str) -> bool:
        with self.engine.lock:
            if _index_of(self.engine.logs, log_id) is None:
                logger.debug(f"delete_log: log_id={log_id} not found")
                return False
            with self.engine.transaction() as engine:
                engine.logs = [l for l in engine.logs if l.id != log_id]

        logger.info(f"Deleted log {log_id}")
        self.engine.propagate('delete_log', self.engine.client.delete_log, log_id)
        self.bus.emit(EVENT_LOG_DELETED, {'log_id': log_id})
        return True

    # =========================================================================
    # USER OPERATIONS
    # =========================================================================

    def get_users(self) -> List[AppUser]:
        with self.engine.lock:
            return copy.deepcopy(self.engine.users)

    def add_user(self, username: str, password: str, role: str = ROLE_USER) -> AppUser:
        """
        Create a user. Usernames are unique case-insensitively. The password is
        sent to the remote store (which hashes it) and never kept locally.
        """
        username = (username or '').strip()
        if not username:
            raise ValidationError('username', 'must be a non-empty string')
        if not password:
            raise ValidationError('password', 'must be a non-empty string')
        if role not in ROLES:
            raise ValueError(f"Invalid role '{role}'. Choose from: {', '.join(ROLES)}")

        with self.engine.transaction() as engine:
            if any(u.username.lower() == username.lower() for u in engine.users):
                raise ValueError(f"Username '{username}' already exists")
            user = AppUser(id=new_id(), username=username, role=role, created_at=now_ms())
            engine.users.append(user)

        logger.info(f"Created user {user.id}: {username} ({role})")
        self.engine.propagate(
            'create_user', self.engine.client.create_user, replace(user, password=password)
        )
        self.bus.emit(EVENT_USER_CREATED, {'user_id': user.id, 'user': user})
        return copy.deepcopy(user)

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> bool:
        """Returns: True if updated, False if not found"""
        if not updates:
            return False
        _validate_columns(updates, _USER_FIELDS, 'user')
        if 'role' in updates and updates['role'] not in ROLES:
            raise ValueError(f"Invalid role '{updates['role']}'")

        local_updates = {k: v for k, v in updates.items() if k != 'password'}
        with self.engine.lock:
            i = _index_of(self.engine.users, user_id)
            if i is None:
                logger.debug(f"update_user: user_id={user_id} not found")
                return False
            if 'username' in local_updates:
                name = local_updates['username'].lower()
                if any(u.username.lower() == name and u.id != user_id for u in self.engine.users):
                    raise ValueError(f"Username '{local_updates['username']}' already exists")
            with self.engine.transaction() as engine:
                engine.users[i] = replace(engine.users[i], **local_updates)

        logger.info(f"Updated user {user_id}: {sorted(k for k in updates if k != 'password')}")
        self.engine.propagate('update_user', self.engine.client.update_user, user_id, dict(updates))
        self.bus.emit(EVENT_USER_UPDATED, {'user_id': user_id, 'updates': local_updates})
        return True

    def delete_user(self, user_id: str) -> bool:
        with self.engine.lock:
            if _index_of(self.engine.users, user_id) is None:
                logger.debug(f"delete_user: user_id={user_id} not found")
                return False
            with self.engine.transaction() as engine:
                engine.users = [u for u in engine.users if u.id != user_id]

        logger.info(f"Deleted user {user_id}")
        self.engine.propagate('delete_user', self.engine.client.delete_user, user_id)
        self.bus.emit(EVENT_USER_DELETED, {'user_id': user_id})
        return True
