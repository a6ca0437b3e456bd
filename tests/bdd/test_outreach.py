from pytest_bdd import scenarios, given, when, then, parsers

from outreachcrm.cli.main import cli
from outreachcrm.models import Company, EmailLog, EMAIL_TYPE_FIRST_TIME, EMAIL_TYPE_FOLLOW_UP

scenarios("features/outreach.feature")


def _company_named(crm, name):
    return next(c for c in crm.get_companies() if c.company_name == name)


@given(parsers.parse('a company "{name}" with {n:d} logged emails'))
@given(parsers.parse('a company "{name}" with {n:d} logged email'))
def company_with_logs(crm, name, n):
    slug = name.lower()
    company = crm.add_company(Company(company_name=name, emails=[f'info@{slug}.com']))
    for i in range(n):
        email_type = EMAIL_TYPE_FIRST_TIME if i == 0 else EMAIL_TYPE_FOLLOW_UP
        crm.add_log(EmailLog(company_id=company.id, email_address=f'info@{slug}.com', email_type=email_type))


@given(parsers.parse('a company "{name}" with address "{email}"'))
def company_with_address(crm, context, name, email):
    context["company"] = crm.add_company(Company(company_name=name, emails=[email, f'info@{name.lower()}.com']))


@given(parsers.parse('a First-time email to "{email}" with a follow-up due'))
def first_time_due(crm, context, email):
    context["first"] = crm.add_log(EmailLog(
        company_id=context["company"].id, email_address=email,
        email_type=EMAIL_TYPE_FIRST_TIME, follow_up_date=1,
    ))


@given("the CLI sees a company whose address already got a First-time email")
def cli_company(mock_crm):
    company = Company(id='c1', company_name='Acme', emails=['sales@acme.com'])
    mock_crm.get_company.return_value = company
    mock_crm.has_received_first_time.return_value = True


@when(parsers.parse('the user deletes "{name}"'))
def delete_company(crm, name):
    assert crm.delete_company(_company_named(crm, name).id)


@when(parsers.parse('the user logs a Follow-up email to "{email}"'))
def log_follow_up(crm, context, email):
    context["follow"] = crm.add_log(EmailLog(
        company_id=context["company"].id, email_address=email, email_type=EMAIL_TYPE_FOLLOW_UP,
    ))


@when("the user imports:")
def user_imports(crm, context, datatable):
    header, *rows = datatable
    items = []
    for row in rows:
        data = dict(zip(header, row))
        data["emails"] = [e.strip() for e in data["emails"].split(",")]
        items.append(data)
    context["bulk"] = crm.bulk_add_companies(items)


@when("the user logs a First-time email from the CLI")
def cli_log_first_time(runner, context):
    context["result"] = runner.invoke(cli, ["logs", "add", "c1"], input="sales@acme.com\nFirst-time\n")


@then(parsers.parse("{n:d} company remains"))
@then(parsers.parse("{n:d} companies exist"))
def company_count(crm, n):
    assert len(crm.get_companies()) == n


@then(parsers.parse('{n:d} log remains, belonging to "{name}"'))
def logs_remaining(crm, n, name):
    logs = crm.get_logs()
    assert len(logs) == n
    assert {l.company_id for l in logs} == {_company_named(crm, name).id}


@then("the First-time email is completed")
def first_completed(crm, context):
    assert {l.id: l for l in crm.get_logs()}[context["first"].id].completed is True


@then("the Follow-up email is open")
def follow_open(crm, context):
    assert {l.id: l for l in crm.get_logs()}[context["follow"].id].completed is False


@then(parsers.parse("{added:d} companies were added and {skipped:d} skipped"))
def bulk_counts(context, added, skipped):
    assert (context["bulk"].added, context["bulk"].skipped) == (added, skipped)
