"""
Unit tests for data models (outreachcrm/models/__init__.py).
Pure Python, no storage and no mocking.
"""

import pytest
from outreachcrm.models import (
    AppUser, Company, EmailLog, ValidationError,
    EMAIL_TYPE_FIRST_TIME, EMAIL_TYPE_FOLLOW_UP, ROLE_ADMIN, ROLE_USER,
    clean_emails, new_id, normalize_email, now_ms, validate_company_draft,
)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def test_company_defaults():
    c = Company()
    assert c.emails == []
    assert c.tags == []
    assert c.is_interested is False
    for field in ('phone_number', 'location', 'notes'):
        assert getattr(c, field) is None, f"Expected {field} to be None"


def test_company_list_defaults_are_not_shared():
    a, b = Company(), Company()
    a.emails.append('x@y.com')
    assert b.emails == []


def test_log_defaults():
    l = EmailLog()
    assert l.email_type == EMAIL_TYPE_FIRST_TIME
    assert l.completed is False
    assert l.follow_up_date is None


def test_user_default_role_is_user():
    assert AppUser().role == ROLE_USER
    assert AppUser(role=ROLE_ADMIN).is_admin


# ---------------------------------------------------------------------------
# Wire form
# ---------------------------------------------------------------------------

def test_company_to_dict_uses_camel_case():
    c = Company(id='c1', company_name='Acme', emails=['a@acme.com'], phone_number='123',
                is_interested=True, created_at=1700000000000)
    data = c.to_dict()
    assert data['companyName'] == 'Acme'
    assert data['phoneNumber'] == '123'
    assert data['isInterested'] is True
    assert data['createdAt'] == 1700000000000
    assert 'company_name' not in data


def test_company_to_dict_omits_unset_optionals():
    data = Company(id='c1', company_name='Acme').to_dict()
    assert 'location' not in data
    assert 'notes' not in data


def test_company_from_dict_ignores_unknown_keys():
    c = Company.from_dict({'id': 'c1', 'companyName': 'Acme', '_id': 'mongo', 'extra': 1})
    assert c.id == 'c1'
    assert c.company_name == 'Acme'


def test_company_from_dict_fills_missing_lists():
    c = Company.from_dict({'id': 'c1', 'companyName': 'Acme', 'tags': None})
    assert c.emails == []
    assert c.tags == []
    assert c.is_interested is False


def test_log_from_dict_reads_camel_case():
    l = EmailLog.from_dict({
        'id': 'l1', 'companyId': 'c1', 'emailAddress': 'a@acme.com',
        'emailType': EMAIL_TYPE_FOLLOW_UP, 'dateSent': 5, 'followUpDate': 9, 'completed': False,
    })
    assert l.company_id == 'c1'
    assert l.email_type == EMAIL_TYPE_FOLLOW_UP
    assert l.follow_up_date == 9
    assert l.is_open_follow_up


def test_completed_log_is_not_open():
    assert not EmailLog(follow_up_date=9, completed=True).is_open_follow_up
    assert not EmailLog(follow_up_date=None).is_open_follow_up


def test_user_to_dict_omits_missing_password():
    data = AppUser(id='u1', username='sam').to_dict()
    assert 'password' not in data
    assert data['createdAt'] == 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_normalize_email_trims_and_lowercases():
    assert normalize_email('  Info@Acme.COM ') == 'info@acme.com'
    assert normalize_email(None) == ''


def test_new_id_is_unique():
    assert new_id() != new_id()


def test_now_ms_is_milliseconds():
    assert now_ms() > 1_600_000_000_000


# ---------------------------------------------------------------------------
# validate_company_draft
# ---------------------------------------------------------------------------

def test_valid_draft_is_cleaned():
    draft = validate_company_draft({'companyName': '  Acme ', 'emails': [' a@acme.com', '  ']})
    assert draft['companyName'] == 'Acme'
    assert draft['emails'] == ['a@acme.com']
    assert draft['tags'] == []


@pytest.mark.parametrize('data, field', [
    ({'emails': ['a@acme.com']}, 'companyName'),
    ({'companyName': '   ', 'emails': ['a@acme.com']}, 'companyName'),
    ({'companyName': 'Acme'}, 'emails'),
    ({'companyName': 'Acme', 'emails': []}, 'emails'),
    ({'companyName': 'Acme', 'emails': ['  ']}, 'emails'),
    ({'companyName': 'Acme', 'emails': 'a@acme.com'}, 'emails'),
    ({'companyName': 'Acme', 'emails': ['a@acme.com'], 'tags': 'vip'}, 'tags'),
])
def test_invalid_draft_names_field(data, field):
    with pytest.raises(ValidationError) as exc:
        validate_company_draft(data)
    assert exc.value.field == field


def test_validation_error_is_value_error():
    assert issubclass(ValidationError, ValueError)


def test_clean_emails_trims_and_drops_blanks():
    assert clean_emails([' a@b.com ', '', '  ', 'c@d.com']) == ['a@b.com', 'c@d.com']


@pytest.mark.parametrize('emails', [None, [], ['  '], 'a@b.com', [1]])
def test_clean_emails_rejects(emails):
    with pytest.raises(ValidationError) as exc:
        clean_emails(emails)
    assert exc.value.field == 'emails'
