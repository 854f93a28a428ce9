import asyncio
import time
from datetime import datetime

import pytest

from techplan.core.models import TechnicianWorkload, WorkloadResult
from techplan.data.db import Db
from techplan.data.repository import Repository
from techplan.workload import WorkloadLookup, get_current_workload


@pytest.fixture()
def repo(tmp_path) -> Repository:
    db = Db(tmp_path / "test.db")
    db.ensure_schema()
    repo = Repository(db)
    repo.upsert_service_type(service_type_id="CAM", name="Camera", estimated_hours=2.0, shared_time=True)
    repo.upsert_service_type(service_type_id="RPR", name="Repair", estimated_hours=3.0)
    return repo


def add_order(repo, order_id, technician_id, status="pending", items=()):
    repo.create_order(
        order_id=order_id,
        technician_id=technician_id,
        status=status,
        created_at=datetime(2024, 3, 4, 9, 0),
    )
    for n, (service_type_id, quantity) in enumerate(items):
        repo.add_order_item(
            item_id=f"{order_id}-{n}",
            order_id=order_id,
            service_type_id=service_type_id,
            quantity=quantity,
        )


class FailingRepo:
    def get_active_order_items(self, technician_id, **kwargs):
        raise RuntimeError("database is locked")


class HungRepo:
    """Store that never answers, but stops at the deadline it is handed."""

    def __init__(self):
        self.deadline = None

    def get_active_order_items(self, technician_id, *, deadline=None, **kwargs):
        self.deadline = deadline
        give_up = time.monotonic() + 3.0
        while time.monotonic() < give_up:
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("store query exceeded deadline")
            time.sleep(0.01)
        return {"O1": []}


def test_workload_sums_active_orders(repo):
    # Three shared-time items of the same type: 2 + 0.4 + 0.4
    add_order(repo, "O1", "T1", "pending", [("CAM", 1), ("CAM", 1), ("CAM", 1)])
    add_order(repo, "O2", "T1", "in_progress", [("RPR", 1)])
    add_order(repo, "O3", "T1", "en_route", [])

    result = asyncio.run(WorkloadLookup(repo).lookup("T1"))

    assert result.degraded is False
    assert result.cause is None
    assert result.hours == pytest.approx(2.8 + 3.0)
    assert result.current_orders == 3


def test_shared_time_does_not_cross_orders(repo):
    add_order(repo, "O1", "T1", items=[("CAM", 1)])
    add_order(repo, "O2", "T1", items=[("CAM", 1)])

    hours = asyncio.run(WorkloadLookup(repo).get_current_workload("T1"))

    assert hours == pytest.approx(4.0)


def test_finished_and_other_technicians_are_ignored(repo):
    add_order(repo, "O1", "T1", "completed", [("RPR", 2)])
    add_order(repo, "O2", "T1", "cancelled", [("RPR", 1)])
    add_order(repo, "O3", "T2", "pending", [("RPR", 1)])

    assert asyncio.run(get_current_workload(repo, "T1")) == 0
    assert asyncio.run(get_current_workload(repo, "T2")) == pytest.approx(3.0)


def test_unknown_technician_has_no_workload(repo):
    result = asyncio.run(WorkloadLookup(repo).lookup("nobody"))
    assert result == WorkloadResult(hours=0.0)


def test_excluded_order_is_left_out(repo):
    add_order(repo, "O1", "T1", items=[("RPR", 1)])
    add_order(repo, "O2", "T1", items=[("RPR", 2)])

    result = asyncio.run(WorkloadLookup(repo).lookup("T1", exclude_order_id="O2"))

    assert result.hours == pytest.approx(3.0)
    assert result.current_orders == 1


def test_store_error_degrades_to_zero(caplog):
    result = asyncio.run(WorkloadLookup(FailingRepo()).lookup("T1"))

    assert result.hours == 0
    assert result.degraded is True
    assert "database is locked" in result.cause
    assert "degraded to 0h" in caplog.text


def test_timeout_degrades_to_zero():
    store = HungRepo()
    lookup = WorkloadLookup(store, timeout_seconds=0.2)

    started = time.monotonic()
    result = asyncio.run(lookup.lookup("T1"))
    elapsed = time.monotonic() - started

    assert result.hours == 0
    assert result.degraded is True
    assert result.cause == "timed out after 0.2s"
    # asyncio.run also waits for the worker thread, which stops at the deadline
    assert elapsed < 1.0
    assert store.deadline is not None
    assert store.deadline <= started + 0.2 + 0.05


def test_store_deadline_error_counts_as_timeout():
    class DeadlineRepo:
        def get_active_order_items(self, technician_id, **kwargs):
            raise TimeoutError("store query exceeded deadline")

    result = asyncio.run(WorkloadLookup(DeadlineRepo(), timeout_seconds=1).lookup("T1"))

    assert result.degraded is True
    assert result.cause == "timed out after 1s"


def test_real_store_respects_expired_deadline(repo):
    add_order(repo, "O1", "T1", items=[("RPR", 1)])

    with pytest.raises(TimeoutError):
        repo.get_active_order_items("T1", deadline=time.monotonic() - 1)

    active = repo.get_active_order_items("T1", deadline=time.monotonic() + 5)
    assert set(active) == {"O1"}


def test_get_workloads_dedupes_ids(repo):
    add_order(repo, "O1", "T1", items=[("RPR", 1)])

    workloads = asyncio.run(WorkloadLookup(repo).get_workloads(["T1", "T2", "T1"]))

    assert workloads == {
        "T1": TechnicianWorkload(technician_id="T1", current_orders=1, total_hours=3.0),
        "T2": TechnicianWorkload(technician_id="T2", current_orders=0, total_hours=0.0),
    }
