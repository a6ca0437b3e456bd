"""
Shared fixtures and step definitions for BDD tests.

- runner, mock_crm, context: available to all scenario files in this directory
- engine-level fixtures (client, cache, engine, crm) come from tests/conftest.py
- no_logging: autouse, prevents log file creation during tests
- 'the output contains' and connectivity steps: shared across all feature files
"""

import pytest
from unittest.mock import MagicMock, patch
from click.testing import CliRunner
from pytest_bdd import given, when, then, parsers

from outreachcrm.models import Company


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_crm():
    crm = MagicMock()
    with patch("outreachcrm.cli.main.get_crm", return_value=crm):
        yield crm


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("outreachcrm.cli.main.configure_logging"):
        yield


def make_companies(n, prefix='local'):
    return [
        Company(id=f'{prefix}-{i}', company_name=f'{prefix} {i}', emails=[f'{prefix}{i}@x.com'], created_at=i)
        for i in range(n)
    ]


@given("the remote store is unreachable")
def remote_unreachable(client):
    client.ping.return_value = False


@given("the remote store is reachable")
def remote_reachable(client):
    client.ping.return_value = True


@given("the local cache is empty")
def cache_empty(cache):
    assert not cache.is_initialized()


@given(parsers.parse("the local cache holds {n:d} companies"))
def cache_holds(cache, context, n):
    context["local"] = make_companies(n)
    cache.persist(context["local"], [], [])


@given(parsers.parse("the remote snapshot holds {n:d} companies"))
def remote_holds(client, n):
    client.fetch_snapshot.return_value = (make_companies(n, prefix='remote'), [])


@when("the engine starts")
def engine_starts(engine, context):
    context["data_changes"] = []
    engine.on_data_change(lambda: context["data_changes"].append(True))
    engine.start()


@then(parsers.parse("the engine holds {companies:d} companies and {logs:d} logs"))
def engine_holds(engine, companies, logs):
    assert len(engine.companies) == companies
    assert len(engine.logs) == logs


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )
