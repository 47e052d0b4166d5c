from datetime import datetime, timezone

from reportdraft.execution_log import ExecutionLog
from reportdraft.models import ExecutionRecord

WHEN = datetime(2026, 1, 19, 1, 0, tzinfo=timezone.utc)


def record(status="CREATED", name="Ops_Update", **kw):
    return ExecutionRecord(timestamp=WHEN, status=status, template_name=name, **kw)


def test_append_writes_header_and_rows(tmp_path):
    log = ExecutionLog(str(tmp_path / "logs" / "execution_log.csv"))
    log.append(record(draft_id="draft-1", dry_run=True, recipients="a@example.com"))
    log.append(record("ERROR", error="x" * 600))

    rows = log.read()
    assert rows[0]["timestamp"] == WHEN.isoformat()
    assert rows[0]["draft_id"] == "draft-1"
    assert rows[0]["dry_run"] == "YES"
    assert rows[1]["test_mode"] == "NO"
    assert len(rows[1]["error"]) == 500


def test_log_is_trimmed_to_newest_rows(tmp_path):
    log = ExecutionLog(str(tmp_path / "execution_log.csv"), max_rows=3)
    for i in range(5):
        log.append(record(name=f"T{i}"))
    assert [r["template_name"] for r in log.read()] == ["T2", "T3", "T4"]


def test_recent_filters(tmp_path):
    log = ExecutionLog(str(tmp_path / "execution_log.csv"))
    log.append(record("CREATED", "Daily_Ops"))
    log.append(record("ERROR", "Daily_Ops"))
    log.append(record("ERROR", "Weekly"))

    assert len(log.recent(status="ERROR")) == 2
    assert [r["template_name"] for r in log.recent(template_name="Daily")] == ["Daily_Ops", "Daily_Ops"]
    assert len(log.recent(limit=1)) == 1


def test_unwritable_path_does_not_raise(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    ExecutionLog(str(blocker / "execution_log.csv")).append(record())
