#!/usr/bin/env python3
"""
Outreach CRM Terminal CLI
Command-line interface over the local-first store.
"""

import json
import logging
import re
import threading
from datetime import datetime, timedelta
from typing import List, Optional

import click

from outreachcrm.engine.crm import CRM
from outreachcrm.engine.metrics import compute_metrics, company_name_for, open_follow_ups
from outreachcrm.engine.network import os_network_up
from outreachcrm.engine.sync import SyncEngine
from outreachcrm.models import (
    Company, EmailLog, EMAIL_TYPE_FIRST_TIME, EMAIL_TYPES, ROLES, ValidationError,
)
from outreachcrm.logging_config import configure_logging, log_call
from outreachcrm.remote.client import AuthenticationError

_EMAIL_RE = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def get_crm() -> CRM:
    """Build an engine for a one-shot command: load and probe, no startup push, no timers."""
    engine = SyncEngine()
    engine.bootstrap(push=False)
    return CRM(engine)


def _wait_forever() -> None:
    threading.Event().wait()


def _fmt_ms(ms: Optional[int]) -> str:
    if not ms:
        return ''
    return datetime.fromtimestamp(ms / 1000).strftime('%Y-%m-%d')


def _split(raw: str) -> List[str]:
    return [part.strip() for part in (raw or '').split(',') if part.strip()]


@log_call
def _prompt_emails() -> List[str]:
    """Prompt for comma-separated emails, re-prompting until all are valid."""
    logger = logging.getLogger("outreachcrm")
    while True:
        emails = _split(click.prompt("Emails (comma-separated)"))
        bad = [e for e in emails if not _EMAIL_RE.match(e)]
        if emails and not bad:
            return emails
        logger.debug(f"_prompt_emails | rejected input={emails!r}")
        click.echo(f"  Invalid email address(es): {', '.join(bad) or '(none given)'}", err=True)


@click.group()
def cli():
    """Outreach CRM - companies, outreach emails and follow-ups"""
    configure_logging()


@cli.command('status')
@log_call
def status():
    """Show remote connectivity and local cache contents"""
    crm = get_crm()
    engine = crm.engine
    state = f"online via {engine.api_base}" if engine.get_remote_status() else "offline (local mode)"
    click.echo(f"Remote:    {state}")
    click.echo(f"Cache:     {engine.cache.path}")
    click.echo(f"Companies: {len(crm.get_companies())}")
    click.echo(f"Logs:      {len(crm.get_logs())}")


# =============================================================================
# COMPANIES COMMANDS
# =============================================================================

@cli.group()
def companies():
    """Manage companies"""
    pass


@companies.command('list')
@click.option('--interested', is_flag=True, help='Only companies marked interested')
@click.option('--tag', help='Filter by tag')
@log_call
def companies_list(interested, tag):
    """List all companies, newest first"""
    results = get_crm().get_companies()
    if interested:
        results = [c for c in results if c.is_interested]
    if tag:
        results = [c for c in results if tag in c.tags]

    if not results:
        click.echo("No companies found.")
        return

    click.echo(f"\nFound {len(results)} companies:\n")
    click.echo(f"{'ID':<10} {'Name':<30} {'Email':<32} {'Interested':<10}")
    click.echo("-" * 85)
    for c in results:
        email = c.emails[0] if c.emails else ''
        click.echo(
            f"{c.id[:8]:<10} {c.company_name[:28]:<30} {email[:30]:<32} "
            f"{'yes' if c.is_interested else '':<10}"
        )


@companies.command('show')
@click.argument('company_id')
@log_call
def companies_show(company_id):
    """Show company details and its outreach history"""
    logger = logging.getLogger("outreachcrm")
    crm = get_crm()
    company = crm.get_company(company_id)

    if not company:
        logger.warning(f"companies_show | company_id={company_id} not found")
        click.echo(f"Company {company_id} not found.", err=True)
        return

    click.echo(f"\n{'='*80}")
    click.echo(f"COMPANY {company.id}: {company.company_name}")
    click.echo(f"{'='*80}")
    click.echo(f"Emails:      {', '.join(company.emails)}")
    click.echo(f"Phone:       {company.phone_number or '(not set)'}")
    click.echo(f"Location:    {company.location or '(not set)'}")
    click.echo(f"Tags:        {', '.join(company.tags) or '(none)'}")
    click.echo(f"Interested:  {'yes' if company.is_interested else 'no'}")
    click.echo(f"Created:     {_fmt_ms(company.created_at)}")
    if company.notes:
        click.echo(f"\nNotes:\n{company.notes}")

    click.echo(f"\n{'='*80}")
    click.echo("OUTREACH HISTORY")
    click.echo(f"{'='*80}")
    logs = crm.get_logs_for_company(company_id)
    if not logs:
        click.echo("No emails logged yet.")
    for l in logs:
        state = 'done' if l.completed else 'open'
        follow = f" | follow-up {_fmt_ms(l.follow_up_date)} ({state})" if l.follow_up_date else ''
        click.echo(f"[{_fmt_ms(l.date_sent)}] {l.email_type} → {l.email_address}{follow}")
        if l.note:
            click.echo(f"  {l.note[:100]}")
    click.echo()


@companies.command('add')
@log_call
def companies_add():
    """Add a new company (interactive)"""
    click.echo("\n=== ADD NEW COMPANY ===\n")

    name = click.prompt("Company name", type=str)
    emails = _prompt_emails()
    phone = click.prompt("Phone", default="", show_default=False) or None
    location = click.prompt("Location", default="", show_default=False) or None
    tags = _split(click.prompt("Tags (comma-separated)", default="", show_default=False))
    notes = click.prompt("Notes", default="", show_default=False) or None

    company = Company(
        company_name=name,
        emails=emails,
        phone_number=phone,
        location=location,
        tags=tags,
        notes=notes,
    )
    try:
        created = get_crm().add_company(company)
    except ValidationError as e:
        click.echo(f"Invalid company: {e}", err=True)
        return
    click.echo(f"\n✓ Created company {created.id}: {created.company_name}")


@companies.command('edit')
@click.argument('company_id')
@click.option('--name', help='Update company name')
@click.option('--location', help='Update location')
@click.option('--phone', help='Update phone number')
@click.option('--notes', help='Update notes')
@click.option('--interested/--not-interested', default=None, help='Mark response interest')
@log_call
def companies_edit(company_id, name, location, phone, notes, interested):
    """Edit a company (use options to set fields)"""
    logger = logging.getLogger("outreachcrm")
    updates = {}
    if name:
        updates['company_name'] = name
    if location:
        updates['location'] = location
    if phone:
        updates['phone_number'] = phone
    if notes:
        updates['notes'] = notes
    if interested is not None:
        updates['is_interested'] = interested

    if not updates:
        click.echo("No updates specified. Use --name, --location, --phone, --notes or --interested", err=True)
        return

    if get_crm().update_company(company_id, updates):
        click.echo(f"✓ Updated company {company_id}")
    else:
        logger.warning(f"companies_edit | company_id={company_id} not found")
        click.echo(f"Company {company_id} not found", err=True)


@companies.command('delete')
@click.argument('company_id')
@click.confirmation_option(prompt='Delete this company and all of its logs?')
@log_call
def companies_delete(company_id):
    """Delete a company and its outreach logs"""
    if get_crm().delete_company(company_id):
        click.echo(f"✓ Deleted company {company_id}")
    else:
        click.echo(f"Company {company_id} not found", err=True)


@companies.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@log_call
def companies_import(path):
    """Bulk import companies from a JSON array file"""
    with open(path, encoding='utf-8') as f:
        try:
            items = json.load(f)
        except ValueError as e:
            click.echo(f"Error: {path} is not valid JSON: {e}", err=True)
            return
    if not isinstance(items, list):
        click.echo("Error: expected a JSON array of companies", err=True)
        return

    result = get_crm().bulk_add_companies(items)
    click.echo(f"\n✓ Imported {result.added}, skipped {result.skipped} duplicates")
    for r in result.rejected:
        click.echo(f"  Row {r.index}: {r.field} {r.message}", err=True)


# =============================================================================
# LOGS COMMANDS
# =============================================================================

@cli.group()
def logs():
    """Manage outreach email logs"""
    pass


@logs.command('list')
@click.option('--company', 'company_id', help='Only logs for this company')
@log_call
def logs_list(company_id):
    """List logged emails, most recent first"""
    crm = get_crm()
    results = crm.get_logs_for_company(company_id) if company_id else crm.get_logs()
    if not results:
        click.echo("No logs found.")
        return

    companies_ = crm.get_companies()
    click.echo(f"\n{'ID':<10} {'Sent':<12} {'Type':<11} {'Company':<25} {'Email':<30}")
    click.echo("-" * 90)
    for l in results:
        click.echo(
            f"{l.id[:8]:<10} {_fmt_ms(l.date_sent):<12} {l.email_type:<11} "
            f"{company_name_for(l, companies_)[:23]:<25} {l.email_address[:28]:<30}"
        )


@logs.command('add')
@click.argument('company_id')
@log_call
def logs_add(company_id):
    """Log an email sent to a company"""
    logger = logging.getLogger("outreachcrm")
    crm = get_crm()
    company = crm.get_company(company_id)
    if not company:
        logger.warning(f"logs_add | company_id={company_id} not found")
        click.echo(f"Company {company_id} not found.", err=True)
        return

    click.echo(f"\n=== LOG EMAIL: {company.company_name} ===\n")
    email = click.prompt("Email address", type=click.Choice(company.emails), default=company.emails[0])
    email_type = click.prompt("Type", type=click.Choice(list(EMAIL_TYPES)), default=EMAIL_TYPE_FIRST_TIME)

    if email_type == EMAIL_TYPE_FIRST_TIME and crm.has_received_first_time(email):
        logger.warning(f"logs_add | duplicate first-time email to {email}")
        click.echo(f"{email} already received a First-time email. Log it as a Follow-up.", err=True)
        return

    note = click.prompt("Note", default="", show_default=False) or None
    days = click.prompt("Follow up in N days (0 for none)", type=int, default=7)
    follow_up = int((datetime.now() + timedelta(days=days)).timestamp() * 1000) if days > 0 else None

    log = crm.add_log(EmailLog(
        company_id=company_id,
        email_address=email,
        email_type=email_type,
        note=note,
        follow_up_date=follow_up,
    ))
    click.echo(f"\n✓ Logged {email_type} email {log.id}")


@logs.command('complete')
@click.argument('log_id')
@log_call
def logs_complete(log_id):
    """Mark a log's follow-up as done"""
    if get_crm().complete_log(log_id):
        click.echo(f"✓ Completed {log_id}")
    else:
        click.echo(f"Log {log_id} not found", err=True)


@logs.command('delete')
@click.argument('log_id')
@log_call
def logs_delete(log_id):
    """Delete a log"""
    if get_crm().delete_log(log_id):
        click.echo(f"✓ Deleted log {log_id}")
    else:
        click.echo(f"Log {log_id} not found", err=True)


# =============================================================================
# QUERY COMMANDS
# =============================================================================

@cli.command('followups')
@log_call
def followups():
    """Show open follow-up obligations, soonest first"""
    crm = get_crm()
    results = open_follow_ups(crm.get_logs())
    if not results:
        click.echo("No open follow-ups. You're all caught up! ✓")
        return

    companies_ = crm.get_companies()
    today = datetime.now().strftime('%Y-%m-%d')
    click.echo(f"\n{len(results)} open follow-ups:\n")
    for l in results:
        due = _fmt_ms(l.follow_up_date)
        flag = ' ⚠️ overdue' if due < today else ''
        click.echo(f"{due}  {company_name_for(l, companies_)[:28]:<30} {l.email_address}{flag}")


@cli.command('metrics')
@log_call
def metrics():
    """Engagement metrics for the dashboard"""
    crm = get_crm()
    m = compute_metrics(crm.get_companies(), crm.get_logs())
    click.echo(f"Companies:           {m.total_companies}")
    click.echo(f"Emails today:        {m.emails_today}")
    click.echo(f"Emails this week:    {m.emails_week}")
    click.echo(f"Emails total:        {m.emails_total}")
    click.echo(f"Follow-ups upcoming: {m.upcoming_follow_ups}")
    click.echo(f"Follow-ups today:    {m.follow_ups_today}")
    click.echo(f"Follow-ups overdue:  {m.overdue_follow_ups}")
    click.echo(f"Response rate:       {m.response_rate}%")


# =============================================================================
# SYNC & AUTH COMMANDS
# =============================================================================

@cli.group()
def sync():
    """Synchronize with the remote store"""
    pass


@sync.command('pull')
@log_call
def sync_pull():
    """Replace local data with the remote snapshot"""
    engine = get_crm().engine
    if not engine.get_remote_status():
        click.echo("Remote unavailable — nothing pulled.", err=True)
        return
    if engine.pull_full_sync():
        click.echo(f"✓ Pulled {len(engine.companies)} companies and {len(engine.logs)} logs")
    else:
        click.echo("Pull failed — see log for details.", err=True)


@sync.command('push')
@log_call
def sync_push():
    """Upsert all local data on the remote store"""
    engine = get_crm().engine
    if not engine.get_remote_status():
        click.echo("Remote unavailable — nothing pushed.", err=True)
        return
    if engine.push_all():
        click.echo(f"✓ Pushed {len(engine.companies)} companies and {len(engine.logs)} logs")
    else:
        click.echo("Push failed — see log for details.", err=True)


@cli.command('login')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True)
@log_call
def login(username, password):
    """Log in against the remote store and pull its data"""
    engine = get_crm().engine
    try:
        user = engine.authenticate(username, password)
    except AuthenticationError as e:
        click.echo(f"Login failed: {e}", err=True)
        return
    if user is None:
        click.echo("Login failed: invalid username or password.", err=True)
        return
    click.echo(f"✓ Logged in as {user.username} ({user.role})")


@cli.command('logout')
@log_call
def logout():
    """Forget cached users"""
    get_crm().engine.logout()
    click.echo("✓ Logged out")


@cli.group()
def users():
    """Manage users"""
    pass


@users.command('list')
@log_call
def users_list():
    """List cached users"""
    results = get_crm().get_users()
    if not results:
        click.echo("No users cached. Log in first.")
        return
    for u in results:
        click.echo(f"{u.id[:8]:<10} {u.username:<25} {u.role:<6}")


@users.command('add')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(list(ROLES)), default='user', show_default=True)
@log_call
def users_add(username, password, role):
    """Create a user"""
    try:
        user = get_crm().add_user(username, password, role)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        return
    click.echo(f"✓ Created user {user.username} ({user.role})")


@users.command('delete')
@click.argument('user_id')
@log_call
def users_delete(user_id):
    """Delete a user"""
    if get_crm().delete_user(user_id):
        click.echo(f"✓ Deleted user {user_id}")
    else:
        click.echo(f"User {user_id} not found", err=True)


@cli.command('run')
@log_call
def run():
    """Keep the engine running: heartbeat and background reconciliation"""
    configure_logging(console=True)
    engine = SyncEngine(network_monitor=os_network_up)
    engine.on_status_change(lambda up: click.echo(f"[{datetime.now():%H:%M:%S}] remote {'online' if up else 'offline'}"))
    engine.on_data_change(lambda: click.echo(f"[{datetime.now():%H:%M:%S}] local data refreshed from remote"))
    engine.start()
    click.echo("Sync engine running. Press Ctrl+C to stop.")
    try:
        _wait_forever()
    except KeyboardInterrupt:
        pass
    finally:
        engine.dispose()
        click.echo("\nStopped.")


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    cli()
