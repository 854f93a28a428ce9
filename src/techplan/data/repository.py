from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Iterable

from techplan.core.models import (
    ACTIVE_ORDER_STATUSES,
    AuditEntry,
    DeliveryProjection,
    OrderItem,
    ServiceOrder,
    Technician,
    WorkSchedule,
)
from techplan.data.db import Db
from techplan.data.excel_io import (
    coerce_float,
    coerce_hhmm,
    is_blank,
    normalize_columns,
    normalize_key,
    parse_int_strict,
    parse_work_days,
    read_excel_bytes,
    require_columns,
    to_int01,
)

logger = logging.getLogger(__name__)

# Item hours come from the order line when set (manual items), otherwise
# from the service type scaled by quantity, as the order form stores them.
_ITEM_SELECT = """
    SELECT
        i.item_id AS id,
        i.order_id AS order_id,
        i.service_type_id AS service_type_id,
        i.quantity AS quantity,
        i.status AS status,
        COALESCE(i.estimated_hours, COALESCE(st.estimated_hours, 0) * COALESCE(NULLIF(i.quantity, 0), 1)) AS estimated_hours,
        COALESCE(i.shared_time, st.shared_time, 0) AS shared_time
    FROM order_item i
    LEFT JOIN service_type st ON st.service_type_id = i.service_type_id
"""


class Repository:
    def __init__(self, db: Db):
        self.db = db

    # ---------- Audit ----------

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a business event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except Exception:
            # Audit failures must not break the calling flow
            logger.exception("Failed to write audit log")

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [
                AuditEntry(
                    id=row["id"],
                    timestamp=row["timestamp"],
                    category=row["category"],
                    message=row["message"],
                    details=row["details"],
                )
                for row in rows
            ]

    # ---------- Config ----------

    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        with self.db.connect() as con:
            row = con.execute(
                "SELECT config_value FROM app_config WHERE config_key = ?", (key,)
            ).fetchone()
        return str(row[0]) if row else default

    def set_config(self, *, key: str, value: str) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(value)),
            )

    def get_workload_timeout_seconds(self, default: float = 8.0) -> float:
        raw = self.get_config(key="workload_timeout_seconds", default=None)
        value = coerce_float(raw)
        return value if value is not None and value > 0 else default

    def default_work_schedule(self) -> WorkSchedule:
        """Fallback schedule, overridable through ``app_config``."""
        base = WorkSchedule.default()
        start = self.get_config(key="default_start_time", default=None) or base.start_time
        end = self.get_config(key="default_end_time", default=None) or base.end_time
        brk = self.get_config(key="default_break_minutes", default=None)
        return WorkSchedule(
            work_days=base.work_days,
            start_time=start,
            end_time=end,
            break_duration_minutes=int(brk) if brk not in (None, "") else base.break_duration_minutes,
        )

    # ---------- Technicians ----------

    def upsert_technician(self, *, technician_id: str, full_name: str = "", is_active: bool = True) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO technician(technician_id, full_name, is_active)
                VALUES(?, ?, ?)
                ON CONFLICT(technician_id) DO UPDATE SET
                    full_name = excluded.full_name,
                    is_active = excluded.is_active
                """,
                (str(technician_id), str(full_name or ""), 1 if is_active else 0),
            )

    def list_technicians(self, *, active_only: bool = True) -> list[Technician]:
        sql = "SELECT technician_id, full_name FROM technician"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY full_name, technician_id"
        with self.db.connect() as con:
            rows = con.execute(sql).fetchall()
        return [Technician(technician_id=str(r["technician_id"]), full_name=str(r["full_name"] or "")) for r in rows]

    # ---------- Work schedules ----------

    def upsert_work_schedule(
        self,
        *,
        technician_id: str,
        work_days: Iterable[int],
        start_time: str,
        end_time: str,
        break_duration_minutes: int = 0,
        is_active: bool = True,
    ) -> None:
        days = sorted({int(d) for d in work_days})
        start_time = coerce_hhmm(start_time, field="start_time")
        end_time = coerce_hhmm(end_time, field="end_time")
        with self.db.connect() as con:
            # Schedules can arrive before the technician roster does.
            con.execute(
                "INSERT OR IGNORE INTO technician(technician_id, full_name) VALUES(?, '')",
                (str(technician_id),),
            )
            con.execute(
                """
                INSERT INTO work_schedule(
                    technician_id, work_days_json, start_time, end_time, break_duration_minutes, is_active, updated_at
                ) VALUES(?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(technician_id) DO UPDATE SET
                    work_days_json = excluded.work_days_json,
                    start_time = excluded.start_time,
                    end_time = excluded.end_time,
                    break_duration_minutes = excluded.break_duration_minutes,
                    is_active = excluded.is_active,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    str(technician_id),
                    json.dumps(days),
                    str(start_time),
                    str(end_time),
                    int(break_duration_minutes or 0),
                    1 if is_active else 0,
                ),
            )

    def get_work_schedule(self, technician_id: str) -> WorkSchedule | None:
        with self.db.connect() as con:
            row = con.execute(
                """
                SELECT work_days_json, start_time, end_time, break_duration_minutes
                FROM work_schedule
                WHERE technician_id = ? AND is_active = 1
                """,
                (str(technician_id),),
            ).fetchone()
        if row is None:
            return None
        return WorkSchedule.from_row(dict(row))

    def get_work_schedule_or_default(self, technician_id: str | None) -> WorkSchedule:
        schedule = self.get_work_schedule(technician_id) if technician_id else None
        return schedule or self.default_work_schedule()

    # ---------- Service types ----------

    def upsert_service_type(
        self,
        *,
        service_type_id: str,
        name: str,
        estimated_hours: float | None,
        shared_time: bool = False,
        is_active: bool = True,
    ) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO service_type(service_type_id, name, estimated_hours, shared_time, is_active)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(service_type_id) DO UPDATE SET
                    name = excluded.name,
                    estimated_hours = excluded.estimated_hours,
                    shared_time = excluded.shared_time,
                    is_active = excluded.is_active
                """,
                (
                    str(service_type_id),
                    str(name),
                    float(estimated_hours) if estimated_hours is not None else None,
                    1 if shared_time else 0,
                    1 if is_active else 0,
                ),
            )

    def get_service_types_rows(self) -> list[dict]:
        with self.db.connect() as con:
            rows = con.execute(
                """
                SELECT service_type_id, name, estimated_hours, shared_time, is_active
                FROM service_type
                ORDER BY name
                """
            ).fetchall()
        return [dict(r) for r in rows]

    # ---------- Orders ----------

    def create_order(
        self,
        *,
        order_id: str,
        technician_id: str | None,
        status: str = "pending",
        is_home_service: bool = False,
        created_at: datetime | None = None,
    ) -> None:
        created = (created_at or datetime.now()).isoformat(timespec="seconds")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO service_order(order_id, technician_id, status, is_home_service, created_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (str(order_id), technician_id, str(status), 1 if is_home_service else 0, created),
            )

    def set_order_status(self, *, order_id: str, status: str) -> None:
        with self.db.connect() as con:
            con.execute("UPDATE service_order SET status = ? WHERE order_id = ?", (str(status), str(order_id)))

    def add_order_item(
        self,
        *,
        item_id: str,
        order_id: str,
        service_type_id: str | None = None,
        quantity: int = 1,
        estimated_hours: float | None = None,
        shared_time: bool | None = None,
        status: str | None = "pending",
    ) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO order_item(item_id, order_id, service_type_id, quantity, estimated_hours, shared_time, status)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(item_id),
                    str(order_id),
                    service_type_id,
                    int(quantity or 1),
                    float(estimated_hours) if estimated_hours is not None else None,
                    None if shared_time is None else (1 if shared_time else 0),
                    status,
                ),
            )

    def get_order(self, order_id: str) -> ServiceOrder | None:
        with self.db.connect() as con:
            row = con.execute(
                "SELECT order_id, technician_id, status, is_home_service, created_at FROM service_order WHERE order_id = ?",
                (str(order_id),),
            ).fetchone()
            if row is None:
                return None
            item_rows = con.execute(
                _ITEM_SELECT + " WHERE i.order_id = ? ORDER BY i.rowid",
                (str(order_id),),
            ).fetchall()

        created_raw = row["created_at"]
        return ServiceOrder(
            order_id=str(row["order_id"]),
            technician_id=str(row["technician_id"]) if row["technician_id"] else None,
            status=str(row["status"]),
            is_home_service=bool(row["is_home_service"]),
            created_at=datetime.fromisoformat(str(created_raw)) if created_raw else None,
            items=[OrderItem.from_row(dict(r)) for r in item_rows],
        )

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        order = self.get_order(order_id)
        return list(order.items) if order else []

    def get_active_order_items(
        self,
        technician_id: str,
        *,
        statuses: Iterable[str] = ACTIVE_ORDER_STATUSES,
        exclude_order_id: str | None = None,
        deadline: float | None = None,
    ) -> dict[str, list[OrderItem]]:
        """Line items of the technician's orders in one of ``statuses``, keyed by order id.

        Orders without items are included with an empty list. ``exclude_order_id``
        leaves out the order being planned so it is not queued behind itself.
        ``deadline`` (``time.monotonic()`` based) aborts the query with
        ``TimeoutError`` once it passes.
        """
        statuses = list(statuses)
        if not statuses:
            return {}
        placeholders = ",".join("?" for _ in statuses)
        with self.db.connect(deadline=deadline) as con:
            order_rows = con.execute(
                f"""
                SELECT order_id FROM service_order
                WHERE technician_id = ? AND status IN ({placeholders}) AND order_id <> ?
                ORDER BY created_at, order_id
                """,
                (str(technician_id), *statuses, str(exclude_order_id or "")),
            ).fetchall()
            item_rows = con.execute(
                _ITEM_SELECT
                + f"""
                JOIN service_order o ON o.order_id = i.order_id
                WHERE o.technician_id = ? AND o.status IN ({placeholders}) AND o.order_id <> ?
                ORDER BY i.rowid
                """,
                (str(technician_id), *statuses, str(exclude_order_id or "")),
            ).fetchall()

        out: dict[str, list[OrderItem]] = {str(r["order_id"]): [] for r in order_rows}
        for r in item_rows:
            out.setdefault(str(r["order_id"]), []).append(OrderItem.from_row(dict(r)))
        return out

    def get_open_orders_rows(self) -> list[dict]:
        """Open orders with their summed item hours, as ``assigned_technician`` rows."""
        with self.db.connect() as con:
            rows = con.execute(
                f"""
                SELECT
                    o.order_id AS order_id,
                    o.technician_id AS assigned_technician,
                    o.status AS status,
                    COALESCE(SUM(items.estimated_hours), 0) AS average_service_time
                FROM service_order o
                LEFT JOIN ({_ITEM_SELECT}) items ON items.order_id = o.order_id
                WHERE o.status <> 'completed'
                GROUP BY o.order_id, o.technician_id, o.status
                ORDER BY o.created_at, o.order_id
                """
            ).fetchall()
        return [dict(r) for r in rows]

    def save_delivery_projection(
        self,
        *,
        order_id: str,
        projection: DeliveryProjection,
        support_technician_id: str | None = None,
    ) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                UPDATE service_order
                SET delivery_date = ?, delivery_time = ?, support_technician_id = ?
                WHERE order_id = ?
                """,
                (
                    projection.delivery_date.date().isoformat(),
                    projection.delivery_time,
                    support_technician_id,
                    str(order_id),
                ),
            )

    def get_order_delivery_row(self, order_id: str) -> dict | None:
        with self.db.connect() as con:
            row = con.execute(
                "SELECT order_id, delivery_date, delivery_time, support_technician_id FROM service_order WHERE order_id = ?",
                (str(order_id),),
            ).fetchone()
        return dict(row) if row else None

    # ---------- Spreadsheet import ----------

    def import_work_schedules_bytes(self, *, content: bytes) -> int:
        """Load technician schedules from an .xlsx sheet. Returns rows imported."""
        df = normalize_columns(read_excel_bytes(content))
        require_columns(df, {"technician_id", "work_days", "start_time", "end_time"})

        count = 0
        for idx, row in df.iterrows():
            technician_id = normalize_key(row.get("technician_id"))
            if technician_id is None:
                continue
            try:
                brk = row.get("break_duration_minutes")
                self.upsert_work_schedule(
                    technician_id=technician_id,
                    work_days=parse_work_days(row.get("work_days")),
                    start_time=coerce_hhmm(row.get("start_time"), field="start_time"),
                    end_time=coerce_hhmm(row.get("end_time"), field="end_time"),
                    break_duration_minutes=0 if is_blank(brk) else parse_int_strict(brk, field="break_duration_minutes"),
                )
            except ValueError as exc:
                raise ValueError(f"row {int(idx) + 2}: {exc}") from exc
            count += 1

        self.log_audit("import", "Work schedules imported", f"rows={count}")
        return count

    def import_service_types_bytes(self, *, content: bytes) -> int:
        """Load service types (hours + shared-time flag) from an .xlsx sheet."""
        df = normalize_columns(read_excel_bytes(content))
        require_columns(df, {"service_type_id", "name", "estimated_hours"})

        count = 0
        for _, row in df.iterrows():
            service_type_id = normalize_key(row.get("service_type_id"))
            if service_type_id is None:
                continue
            self.upsert_service_type(
                service_type_id=service_type_id,
                name=str(row.get("name") or "").strip(),
                estimated_hours=coerce_float(row.get("estimated_hours")),
                shared_time=bool(to_int01(row.get("shared_time"))),
            )
            count += 1

        self.log_audit("import", "Service types imported", f"rows={count}")
        return count
