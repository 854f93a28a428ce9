import json
from datetime import datetime

import pytest

from techplan.app import build_arg_parser, main, run
from techplan.data.db import Db
from techplan.data.repository import Repository


def run_cli(argv: list[str], capsys) -> tuple[int, dict]:
    code = run(build_arg_parser().parse_args(argv))
    return code, json.loads(capsys.readouterr().out)


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "cli.db"


def test_init_db(db_path, capsys):
    code, payload = run_cli(["--db", str(db_path), "init-db"], capsys)

    assert code == 0
    assert payload == {"status": "success", "db_path": str(db_path)}
    assert db_path.exists()


def test_workload_and_plan(db_path, capsys):
    db = Db(db_path)
    db.ensure_schema()
    repo = Repository(db)
    repo.create_order(order_id="O1", technician_id="T1", created_at=datetime(2024, 3, 4, 9, 0))
    repo.add_order_item(item_id="I1", order_id="O1", estimated_hours=4)

    code, payload = run_cli(["--db", str(db_path), "workload", "T1"], capsys)
    assert code == 0
    assert payload["technician_id"] == "T1"
    assert payload["hours"] == 4
    assert payload["degraded"] is False

    code, payload = run_cli(["--db", str(db_path), "plan", "O1", "--dry-run"], capsys)
    assert code == 0
    assert payload["delivery_date"] == "2024-03-05"
    assert payload["delivery_time"] == "12:00 PM"


def test_plan_unknown_order_exits_nonzero(db_path, capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--db", str(db_path), "plan", "missing"])

    assert exc.value.code == 1
    assert json.loads(capsys.readouterr().out)["status"] == "error"


def test_command_is_required():
    with pytest.raises(SystemExit):
        build_arg_parser().parse_args([])
