"""Operator command line, run in-process against a throwaway SQLite database."""

import pytest

from farm_ledger.cli import main
from farm_ledger.db.engine import get_session, reset_engine
from farm_ledger.models.event import EventStatus
from farm_ledger.services.event_store import EventStore

TENANT = "tenant-cli"


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    for name in ("FARM_LEDGER_DATABASE_URL", "FARM_LEDGER_LOG_LEVEL", "FARM_LEDGER_LOCKER_ID"):
        monkeypatch.delenv(name, raising=False)
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    yield url
    reset_engine()


@pytest.fixture
def ready_db(db_url):
    assert main(["--database-url", db_url, "init-db"]) == 0
    assert main(["--database-url", db_url, "seed-tenant", TENANT, "--name", "CLI Farm"]) == 0
    return db_url


def _add_event(event_type: str, payload: dict):
    session = get_session()
    try:
        event = EventStore(session).create_event(TENANT, "site-main", event_type, payload)
        session.commit()
        return event.id
    finally:
        session.close()


def _status(event_id):
    session = get_session()
    try:
        return EventStore(session).get_event(TENANT, event_id).status
    finally:
        session.close()


def test_seed_tenant_reports_accounts(db_url, capsys):
    main(["--database-url", db_url, "init-db"])
    assert main(["--database-url", db_url, "seed-tenant", TENANT]) == 0
    assert main(["--database-url", db_url, "seed-tenant", TENANT]) == 0

    out = capsys.readouterr().out
    assert f"Tenant {TENANT}: 23 accounts created" in out
    assert f"Tenant {TENANT}: 0 accounts created" in out


def test_post_pending(ready_db, capsys):
    event_id = _add_event("SALE", {"saleAmount": 100})

    assert main(["--database-url", ready_db, "post-pending", TENANT]) == 0

    assert "Processed 1: 1 posted, 0 already posted, 0 failed" in capsys.readouterr().out
    assert _status(event_id) == EventStatus.POSTED


def test_post_pending_with_failure_exits_nonzero(ready_db, capsys):
    event_id = _add_event("HARVEST_CROP", {})

    assert main(["--database-url", ready_db, "post-pending", TENANT]) == 1

    out = capsys.readouterr().out
    assert "1 failed" in out
    assert str(event_id) in out
    assert _status(event_id) == EventStatus.FAILED


def test_post_event(ready_db, capsys):
    event_id = _add_event("PURCHASE_LIVESTOCK", {"totalCost": 500})

    assert main(["--database-url", ready_db, "post-event", TENANT, str(event_id)]) == 0
    assert main(["--database-url", ready_db, "post-event", TENANT, str(event_id)]) == 0

    out = capsys.readouterr().out
    assert f"Event {event_id} posted" in out
    assert f"Event {event_id} already posted" in out


def test_reverse_unknown_transaction(ready_db, capsys):
    code = main(
        [
            "--database-url",
            ready_db,
            "reverse",
            TENANT,
            "00000000-0000-0000-0000-000000000000",
            "--reason",
            "typo",
        ]
    )
    assert code == 1
    assert "TRANSACTION_NOT_FOUND" in capsys.readouterr().err


def test_bad_config_file(tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text("posting:\n  retries: 3\n")

    assert main(["--config", str(path), "init-db"]) == 2
    assert "posting.retries" in capsys.readouterr().err


def test_stuck_release(ready_db, capsys):
    event_id = _add_event("SALE", {"saleAmount": 1})
    session = get_session()
    try:
        EventStore(session).acquire_lock(TENANT, event_id, "crashed-worker")
        session.commit()
    finally:
        session.close()

    assert main(["--database-url", ready_db, "stuck", TENANT, "--older-than-minutes", "-1", "--release"]) == 0

    out = capsys.readouterr().out
    assert "crashed-worker" in out
    assert "Released 1 event(s)" in out
    assert _status(event_id) == EventStatus.PENDING


@pytest.mark.parametrize(
    "command",
    [
        ["post-event", TENANT, "not-a-uuid"],
        ["reverse", TENANT, "nope", "--reason", "typo"],
    ],
)
def test_malformed_id_is_a_usage_error(db_url, capsys, command):
    with pytest.raises(SystemExit) as exc_info:
        main(["--database-url", db_url, *command])

    assert exc_info.value.code == 2
    assert "invalid UUID value" in capsys.readouterr().err
