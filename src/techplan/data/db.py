from __future__ import annotations


from contextlib import contextmanager
import sqlite3
import time
from pathlib import Path

BUSY_TIMEOUT_SECONDS = 20.0
# SQLite VM instructions between deadline checks
PROGRESS_CHECK_INTERVAL = 1000


class Db:
    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self, *, deadline: float | None = None):
        """Open a connection for one unit of work.

        ``deadline`` is a ``time.monotonic()`` instant. When given, lock waits
        are capped to the time left and running statements are aborted once
        it passes; the abort surfaces as ``TimeoutError``.
        """
        busy_timeout = BUSY_TIMEOUT_SECONDS
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("store deadline passed before connecting")
            busy_timeout = min(busy_timeout, remaining)

        # One connection per call: lookups run from worker threads.
        con = sqlite3.connect(self.path, timeout=busy_timeout)
        con.row_factory = sqlite3.Row
        if deadline is not None:
            con.set_progress_handler(lambda: 1 if time.monotonic() >= deadline else 0, PROGRESS_CHECK_INTERVAL)
        try:
            yield con
            con.commit()
        except sqlite3.OperationalError as exc:
            con.rollback()
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"store query exceeded deadline: {exc}") from exc
            raise
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        con = sqlite3.connect(self.path, timeout=10.0)
        try:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute("PRAGMA foreign_keys=ON;")

            con.executescript(
                """
                CREATE TABLE IF NOT EXISTS app_config (
                    config_key TEXT PRIMARY KEY,
                    config_value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
                    category TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT
                );

                CREATE TABLE IF NOT EXISTS technician (
                    technician_id TEXT PRIMARY KEY,
                    full_name TEXT NOT NULL DEFAULT '',
                    role TEXT NOT NULL DEFAULT 'technician',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS work_schedule (
                    technician_id TEXT PRIMARY KEY,
                    work_days_json TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    break_duration_minutes INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY(technician_id) REFERENCES technician(technician_id)
                );

                CREATE TABLE IF NOT EXISTS service_type (
                    service_type_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    estimated_hours REAL,
                    shared_time INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS service_order (
                    order_id TEXT PRIMARY KEY,
                    technician_id TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    is_home_service INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    delivery_date TEXT,
                    delivery_time TEXT,
                    support_technician_id TEXT,
                    FOREIGN KEY(technician_id) REFERENCES technician(technician_id)
                );

                CREATE INDEX IF NOT EXISTS idx_service_order_technician_status
                    ON service_order(technician_id, status);

                -- estimated_hours / shared_time override the service type (manual items)
                CREATE TABLE IF NOT EXISTS order_item (
                    item_id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL,
                    service_type_id TEXT,
                    quantity INTEGER NOT NULL DEFAULT 1,
                    estimated_hours REAL,
                    shared_time INTEGER,
                    status TEXT,
                    FOREIGN KEY(order_id) REFERENCES service_order(order_id) ON DELETE CASCADE,
                    FOREIGN KEY(service_type_id) REFERENCES service_type(service_type_id)
                );

                CREATE INDEX IF NOT EXISTS idx_order_item_order ON order_item(order_id);
                """
            )
            con.commit()
        finally:
            con.close()
