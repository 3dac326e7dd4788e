from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from crawler.url_utils import base_url_for, registered_domain


class CrawlFrequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def days(self) -> int:
        return _DAYS[self]

    @property
    def interval(self) -> timedelta:
        return timedelta(days=self.days)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def is_due(self, last_crawled_at: Optional[datetime], now: datetime) -> bool:
        """Never crawled, or at least one full interval since the last successful crawl."""
        if last_crawled_at is None:
            return True
        return now - last_crawled_at >= self.interval

    @classmethod
    def parse(cls, value, default=None):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return default if default is not None else cls.WEEKLY


_DAYS = {
    CrawlFrequency.DAILY: 1,
    CrawlFrequency.WEEKLY: 7,
    CrawlFrequency.BIWEEKLY: 14,
    CrawlFrequency.MONTHLY: 30,
}


class CrawlOutcome(Enum):
    SNAPSHOT = "snapshot"   # a snapshot was produced (changed or not)
    NO_DATA = "no_data"     # reachable, but no page or no recognizable Facts
    FAILED = "failed"       # fetch failure, retried next cycle

    @property
    def advances_crawl(self) -> bool:
        return self is not CrawlOutcome.FAILED


@dataclass(frozen=True)
class MonitoredTarget:
    """
    A competitor site under monitoring.
    Owned by the operator; the core only reads it and reports crawl outcomes.
    """
    target_id: int
    domain: str
    canonical_url: Optional[str] = None
    frequency: CrawlFrequency = CrawlFrequency.WEEKLY
    last_crawled_at: Optional[datetime] = None
    active: bool = True
    name: Optional[str] = None

    @property
    def base_url(self) -> str:
        return base_url_for(self.domain, self.canonical_url)

    @property
    def display_name(self) -> str:
        return self.name or self.domain

    def is_due(self, now: datetime) -> bool:
        return self.active and self.frequency.is_due(self.last_crawled_at, now)

    def matches(self, value) -> bool:
        """Operator lookup by id, domain or URL."""
        if value is None:
            return False
        text = str(value).strip()
        if text.isdigit():
            return int(text) == self.target_id
        wanted = registered_domain(text)
        return bool(wanted) and wanted in (
            registered_domain(self.domain),
            registered_domain(self.canonical_url or ""),
        )
