import json
import threading
from typing import Optional

from pagewatch.snapshot.models import Snapshot
from pagewatch.snapshot.storage import SnapshotStore


class MySQLSnapshotStore(SnapshotStore):
    """
    MySQL implementation of SnapshotStore.
    One row per target; put() is an upsert so the row always holds the latest baseline.
    """

    def __init__(self, connection_pool):
        super().__init__()
        self._pool = connection_pool
        # A single connection is not safe for concurrent cursors
        self._db_lock = threading.Lock()

    def ensure_schema(self) -> None:
        sql = """
            CREATE TABLE IF NOT EXISTS page_snapshots (
                target_id VARCHAR(255) NOT NULL PRIMARY KEY,
                url VARCHAR(2048) NOT NULL,
                content_hash CHAR(64) NOT NULL,
                price_hash CHAR(64) NOT NULL,
                payload LONGTEXT NOT NULL,
                captured_at VARCHAR(64) NOT NULL
            ) CHARACTER SET utf8mb4
        """
        with self._db_lock, self._pool.cursor() as cursor:
            cursor.execute(sql)
            self._pool.commit()

    def get(self, target_id: str) -> Optional[Snapshot]:
        sql = "SELECT payload FROM page_snapshots WHERE target_id = %s"
        with self._db_lock, self._pool.cursor() as cursor:
            cursor.execute(sql, (target_id,))
            row = cursor.fetchone()
        if not row:
            return None
        return Snapshot.from_dict(json.loads(row[0]))

    def put(self, target_id: str, snapshot: Snapshot) -> None:
        sql = """
            INSERT INTO page_snapshots (
                target_id, url, content_hash, price_hash, payload, captured_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON DUPLICATE KEY UPDATE
                url = VALUES(url),
                content_hash = VALUES(content_hash),
                price_hash = VALUES(price_hash),
                payload = VALUES(payload),
                captured_at = VALUES(captured_at)
        """
        payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        with self._db_lock, self._pool.cursor() as cursor:
            try:
                cursor.execute(sql, (
                    target_id, snapshot.url, snapshot.content_hash,
                    snapshot.price_hash, payload, snapshot.captured_at.isoformat(),
                ))
                self._pool.commit()
            except Exception:
                self._pool.rollback()
                raise

    def remove(self, target_id: str) -> None:
        sql = "DELETE FROM page_snapshots WHERE target_id = %s"
        with self._db_lock, self._pool.cursor() as cursor:
            cursor.execute(sql, (target_id,))
            self._pool.commit()
