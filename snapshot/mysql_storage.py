import json
from typing import List, Optional, Tuple

from crawler.hasher import canonicalize
from crawler.logger import logger
from detection.models import Change, Significance
from extraction import get_strategy
from extraction.models import Category
from snapshot.models import Snapshot
from snapshot.storage import SnapshotStore

_COLUMNS = """
    s.snapshot_id, s.target_id, s.category, s.content_hash,
    s.facts, s.metrics, s.changes, s.significance, s.source_url,
    s.previous_snapshot_id, s.previous_hash, s.created_at
"""


class MySQLSnapshotStore(SnapshotStore):
    """
    MySQL implementation of SnapshotStore.
    Rows in competitor_snapshots are append-only; competitor_snapshot_latest
    holds the single latest pointer per (target, category).
    """

    def __init__(self, pool):
        # crawler.db.ConnectionPool; one connection per call, never shared across threads
        self._pool = pool

    def find_latest(self, target_id: int, category: Category) -> Optional[Snapshot]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM competitor_snapshot_latest l
            JOIN competitor_snapshots s ON s.snapshot_id = l.snapshot_id
            WHERE l.target_id = %s AND l.category = %s
            LIMIT 1
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (target_id, category.value))
            row = cursor.fetchone()
            return self._row_to_snapshot(row) if row else None

    def save(self, snapshot: Snapshot) -> None:
        """
        Insert the snapshot and move the latest pointer in one transaction.
        The pointer must still reference the snapshot this one was diffed against.
        """
        lock_sql = """
            SELECT snapshot_id FROM competitor_snapshot_latest
            WHERE target_id = %s AND category = %s
            FOR UPDATE
        """
        insert_sql = """
            INSERT INTO competitor_snapshots (
                snapshot_id, target_id, category, content_hash,
                facts, metrics, changes, significance, source_url,
                previous_snapshot_id, previous_hash, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        pointer_sql = """
            INSERT INTO competitor_snapshot_latest (target_id, category, snapshot_id)
            VALUES (%s, %s, %s)
            ON DUPLICATE KEY UPDATE snapshot_id = VALUES(snapshot_id)
        """
        category = snapshot.category.value

        with self._pool.connection() as conn, conn.cursor() as cursor:
            try:
                conn.begin()

                cursor.execute(lock_sql, (snapshot.target_id, category))
                row = cursor.fetchone()
                current = row[0] if row else None
                if current != snapshot.previous_snapshot_id:
                    # Another writer moved the pointer after this snapshot was diffed
                    raise ValueError(
                        f"Stale snapshot for target {snapshot.target_id}/{category}: "
                        f"latest is {current}, expected {snapshot.previous_snapshot_id}"
                    )

                cursor.execute(insert_sql, (
                    snapshot.snapshot_id, snapshot.target_id, category, snapshot.content_hash,
                    json.dumps(canonicalize(snapshot.facts), ensure_ascii=False),
                    json.dumps(canonicalize(snapshot.metrics), ensure_ascii=False),
                    json.dumps([c.to_dict() for c in snapshot.changes], ensure_ascii=False),
                    snapshot.significance.value if snapshot.significance else None,
                    snapshot.source_url,
                    snapshot.previous_snapshot_id, snapshot.previous_hash,
                    snapshot.created_at,
                ))
                cursor.execute(pointer_sql, (snapshot.target_id, category, snapshot.snapshot_id))

                conn.commit()
            except Exception as e:
                conn.rollback()
                if isinstance(e, ValueError):
                    raise
                raise RuntimeError(f"Failed to save snapshot {snapshot.snapshot_id}: {str(e)}") from e

    def delete_older_than(self, target_id: int, category: Category, keep: int) -> int:
        keep = max(int(keep), 1)
        select_sql = """
            SELECT s.snapshot_id FROM competitor_snapshots s
            LEFT JOIN competitor_snapshot_latest l ON l.snapshot_id = s.snapshot_id
            WHERE s.target_id = %s AND s.category = %s AND l.snapshot_id IS NULL
            ORDER BY s.created_at DESC
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(select_sql, (target_id, category.value))
            # The latest row is excluded above but still counts towards `keep`
            stale = [row[0] for row in cursor.fetchall()][keep - 1:]
            if not stale:
                return 0

            placeholders = ", ".join(["%s"] * len(stale))
            cursor.execute(
                f"DELETE FROM competitor_snapshots WHERE snapshot_id IN ({placeholders})",
                tuple(stale),
            )
            conn.commit()

        logger.info(
            f"[RETENTION] Removed {len(stale)} snapshots for target {target_id}/{category.value}",
            extra={"context": "snapshot"},
        )
        return len(stale)

    def history(self, target_id: int, category: Category, limit: int = 10) -> List[Snapshot]:
        sql = f"""
            SELECT {_COLUMNS}
            FROM competitor_snapshots s
            WHERE s.target_id = %s AND s.category = %s
            ORDER BY s.created_at DESC
            LIMIT %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (target_id, category.value, int(limit)))
            return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def keys(self) -> List[Tuple[int, Category]]:
        """Every (target_id, Category) pair that has a latest snapshot."""
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT target_id, category FROM competitor_snapshot_latest")
            return [(row[0], Category(row[1])) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_snapshot(row) -> Snapshot:
        category = Category(row[2])
        facts = json.loads(row[4]) if row[4] else {}
        changes = json.loads(row[6]) if row[6] else []
        return Snapshot(
            snapshot_id=row[0],
            target_id=row[1],
            category=category,
            content_hash=row[3],
            facts=get_strategy(category).facts_from_dict(facts),
            metrics=json.loads(row[5]) if row[5] else {},
            changes=tuple(Change.from_dict(c) for c in changes),
            significance=Significance.parse(row[7]),
            source_url=row[8],
            previous_snapshot_id=row[9],
            previous_hash=row[10],
            created_at=row[11],
        )
