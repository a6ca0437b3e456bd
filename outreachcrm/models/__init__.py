"""
Data Models
Dataclasses for all entities. These are pure Python objects, no storage or
network logic. to_dict()/from_dict() convert to the camelCase JSON form used
by both the local cache and the remote store.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

EMAIL_TYPE_FIRST_TIME = 'First-time'
EMAIL_TYPE_FOLLOW_UP = 'Follow-up'
EMAIL_TYPES = (EMAIL_TYPE_FIRST_TIME, EMAIL_TYPE_FOLLOW_UP)

ROLE_ADMIN = 'admin'
ROLE_USER = 'user'
ROLES = (ROLE_ADMIN, ROLE_USER)


def new_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def normalize_email(email: str) -> str:
    """Trim + lowercase. The single comparison rule for email addresses."""
    return (email or '').strip().lower()


class ValidationError(ValueError):
    """A candidate record failed a required-field check."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.message = message


# Attribute name -> wire key. Attributes not listed here share their name.
_COMPANY_KEYS = {
    'company_name': 'companyName',
    'phone_number': 'phoneNumber',
    'is_interested': 'isInterested',
    'created_at': 'createdAt',
}
_LOG_KEYS = {
    'company_id': 'companyId',
    'email_address': 'emailAddress',
    'email_type': 'emailType',
    'date_sent': 'dateSent',
    'follow_up_date': 'followUpDate',
}
_USER_KEYS = {
    'created_at': 'createdAt',
}


def _to_wire(obj, keys: Dict[str, str], optional: tuple) -> Dict[str, Any]:
    out = {}
    for attr, value in obj.__dict__.items():
        if value is None and attr in optional:
            continue
        out[keys.get(attr, attr)] = list(value) if isinstance(value, list) else value
    return out


def _from_wire(cls, data: Dict[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    reverse = {wire: attr for attr, wire in keys.items()}
    known = set(cls.__dataclass_fields__)
    kwargs = {}
    for key, value in data.items():
        attr = reverse.get(key, key)
        if attr in known:
            kwargs[attr] = value
    return kwargs


@dataclass
class Company:
    """Outreach target (called 'contact' by the remote store)"""
    id: str = ''
    company_name: str = ''
    emails: List[str] = field(default_factory=list)
    phone_number: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_interested: bool = False
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _to_wire(self, _COMPANY_KEYS, ('phone_number', 'location', 'notes'))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Company':
        kwargs = _from_wire(cls, data, _COMPANY_KEYS)
        kwargs['emails'] = list(kwargs.get('emails') or [])
        kwargs['tags'] = list(kwargs.get('tags') or [])
        kwargs['is_interested'] = bool(kwargs.get('is_interested', False))
        return cls(**kwargs)


@dataclass
class EmailLog:
    """One outreach email sent to a company address"""
    id: str = ''
    company_id: str = ''
    email_address: str = ''
    email_type: str = EMAIL_TYPE_FIRST_TIME
    date_sent: int = 0
    note: Optional[str] = None
    follow_up_date: Optional[int] = None
    completed: bool = False

    @property
    def is_open_follow_up(self) -> bool:
        return self.follow_up_date is not None and not self.completed

    def to_dict(self) -> Dict[str, Any]:
        return _to_wire(self, _LOG_KEYS, ('note', 'follow_up_date'))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmailLog':
        kwargs = _from_wire(cls, data, _LOG_KEYS)
        kwargs['completed'] = bool(kwargs.get('completed', False))
        return cls(**kwargs)


@dataclass
class AppUser:
    """Authenticated user. password is only set on the way to the remote store."""
    id: str = ''
    username: str = ''
    role: str = ROLE_USER
    created_at: int = 0
    password: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return _to_wire(self, _USER_KEYS, ('password',))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppUser':
        return cls(**_from_wire(cls, data, _USER_KEYS))


def clean_emails(emails: Any) -> List[str]:
    """Trimmed, non-blank addresses; raises ValidationError when none remain."""
    if not isinstance(emails, (list, tuple)) or not all(isinstance(e, str) for e in emails):
        raise ValidationError('emails', 'must be a list of strings')
    cleaned = [e.strip() for e in emails if e.strip()]
    if not cleaned:
        raise ValidationError('emails', 'at least one email is required')
    return cleaned


def validate_company_draft(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check the required fields of a company about to be created.
    Accepts wire (camelCase) keys. Returns a cleaned copy with emails trimmed
    and blank emails removed; raises ValidationError otherwise.
    """
    name = data.get('companyName')
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('companyName', 'must be a non-empty string')

    cleaned = clean_emails(data.get('emails'))

    tags = data.get('tags') or []
    if not isinstance(tags, (list, tuple)):
        raise ValidationError('tags', 'must be a list of strings')

    result = dict(data)
    result['companyName'] = name.strip()
    result['emails'] = cleaned
    result['tags'] = list(tags)
    return result
