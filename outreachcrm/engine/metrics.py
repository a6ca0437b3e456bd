"""
Engagement Metrics - dashboard numbers computed from local state.
Pure functions; `now` is injectable so tests pin the clock.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from outreachcrm.models import Company, EmailLog

UNKNOWN_COMPANY = 'Unknown'


@dataclass
class DashboardMetrics:
    total_companies: int = 0
    emails_today: int = 0
    emails_week: int = 0
    emails_total: int = 0
    upcoming_follow_ups: int = 0
    follow_ups_today: int = 0
    overdue_follow_ups: int = 0
    response_rate: int = 0


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def start_of_day_ms(now: datetime) -> int:
    """Local midnight of `now`, in epoch milliseconds."""
    return _ms(now.replace(hour=0, minute=0, second=0, microsecond=0))


def compute_metrics(
    companies: List[Company],
    logs: List[EmailLog],
    now: Optional[datetime] = None,
) -> DashboardMetrics:
    now = now or datetime.now()
    now_ms = _ms(now)
    today_start = start_of_day_ms(now)
    tomorrow_start = start_of_day_ms(now + timedelta(days=1))
    week_ago = today_start - 7 * 24 * 60 * 60 * 1000

    open_logs = [l for l in logs if l.is_open_follow_up]

    contacted = {l.company_id for l in logs}
    interested = sum(1 for c in companies if c.is_interested and c.id in contacted)
    # halves round up
    response_rate = int(interested * 100 / len(contacted) + 0.5) if contacted else 0

    return DashboardMetrics(
        total_companies=len(companies),
        emails_today=sum(1 for l in logs if today_start <= l.date_sent < tomorrow_start),
        emails_week=sum(1 for l in logs if week_ago <= l.date_sent < tomorrow_start),
        emails_total=len(logs),
        upcoming_follow_ups=sum(1 for l in open_logs if l.follow_up_date > now_ms),
        follow_ups_today=sum(1 for l in open_logs if today_start <= l.follow_up_date < tomorrow_start),
        overdue_follow_ups=sum(1 for l in open_logs if l.follow_up_date < today_start),
        response_rate=response_rate,
    )


def open_follow_ups(logs: Iterable[EmailLog]) -> List[EmailLog]:
    """Open obligations, soonest due first."""
    return sorted((l for l in logs if l.is_open_follow_up), key=lambda l: l.follow_up_date)


def company_name_for(log: EmailLog, companies: Iterable[Company]) -> str:
    """Name of the log's company; dangling references read as 'Unknown'."""
    for c in companies:
        if c.id == log.company_id:
            return c.company_name
    return UNKNOWN_COMPANY
