from datetime import datetime
from typing import List, Optional

from crawler.logger import logger
from scheduling.models import CrawlFrequency, CrawlOutcome, MonitoredTarget
from scheduling.storage import TargetSource

_COLUMNS = """
    id, domain, canonical_url, crawl_frequency, last_crawled_at, is_active, name
"""


class MySQLTargetSource(TargetSource):
    """
    MySQL implementation of TargetSource over the operator-owned monitored_targets table.
    """

    def __init__(self, pool):
        # crawler.db.ConnectionPool; one connection per call, never shared across threads
        self._pool = pool

    def list_targets(self, active_only: bool = True) -> List[MonitoredTarget]:
        sql = f"SELECT {_COLUMNS} FROM monitored_targets"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY id"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql)
            return [self._row_to_target(row) for row in cursor.fetchall()]

    def get(self, target_id: int) -> Optional[MonitoredTarget]:
        sql = f"SELECT {_COLUMNS} FROM monitored_targets WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (target_id,))
            row = cursor.fetchone()
            return self._row_to_target(row) if row else None

    def record_crawl_attempt(self, target_id: int, outcome: CrawlOutcome,
                             at: Optional[datetime] = None) -> None:
        at = at or datetime.utcnow()
        if outcome.advances_crawl:
            sql = """
                UPDATE monitored_targets
                SET last_crawled_at = %s, last_outcome = %s, consecutive_failures = 0
                WHERE id = %s
            """
            params = (at, outcome.value, target_id)
        else:
            sql = """
                UPDATE monitored_targets
                SET last_outcome = %s, last_failed_at = %s,
                    consecutive_failures = consecutive_failures + 1
                WHERE id = %s
            """
            params = (outcome.value, at, target_id)

        with self._pool.connection() as conn, conn.cursor() as cursor:
            affected = cursor.execute(sql, params)
            conn.commit()

        if affected == 0:
            logger.warning(
                f"[TARGET] Crawl outcome for unknown target {target_id} ignored",
                extra={"context": "scheduler"},
            )

    @staticmethod
    def _row_to_target(row) -> MonitoredTarget:
        return MonitoredTarget(
            target_id=row[0],
            domain=row[1],
            canonical_url=row[2],
            frequency=CrawlFrequency.parse(row[3]),
            last_crawled_at=row[4],
            active=bool(row[5]),
            name=row[6],
        )
