"""
Tests for the auditctl CLI.
"""

import json
import signal
import threading

import pytest
from sqlalchemy import update
from typer.testing import CliRunner

from auditchain.core.entry import AuditEvent
from auditchain.log import SqlAuditStore, audit_logs, create_audit_engine
from auditchain.verify import verify_integrity
from auditctl.commands import verify as verify_commands
from auditctl.main import app

runner = CliRunner()


def _invoke(*args):
    return runner.invoke(app, ["--log-level", "CRITICAL", *args])


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("AUDITCHAIN_CHECKPOINT_DIR", str(tmp_path / "anchors"))
    monkeypatch.setenv("AUDITCHAIN_SIGNING_KEY", str(tmp_path / "keys" / "anchor"))
    return tmp_path


def _seed(db_url, n=3):
    store = SqlAuditStore(create_audit_engine(db_url))
    for i in range(n):
        store.append(AuditEvent(action=f"phi.read.{i}", status="success", actor_id="5"))
    return store


def test_version():
    result = _invoke("version")
    assert result.exit_code == 0
    assert "auditctl" in result.stdout


def test_init_then_verify(db_url):
    result = _invoke("init", "--database-url", db_url, "--json")
    assert result.exit_code == 0, result.stdout
    data = json.loads(result.stdout)
    assert data["createdTable"] is True
    assert data["immutability"]["isFullyProtected"] is True

    _seed(db_url)
    result = _invoke("verify", "chain", "--database-url", db_url, "--json")
    assert result.exit_code == 0
    report = json.loads(result.stdout)
    assert report["isValid"] is True
    assert report["verifiedLogs"] == 3

    result = _invoke("verify", "immutability", "--database-url", db_url, "--json")
    assert result.exit_code == 0
    assert json.loads(result.stdout)["deleteProtection"] == "ACTIVE"


def test_verify_chain_reports_tampering(store, db_url):
    _seed(db_url)
    with store.engine.begin() as conn:
        conn.execute(update(audit_logs).where(audit_logs.c.id == 2).values(action="phi.edited"))
    result = _invoke("verify", "chain", "--database-url", db_url, "--json")
    assert result.exit_code == 2
    report = json.loads(result.stdout)
    assert report["isValid"] is False
    assert [t["id"] for t in report["tamperedEntries"]] == [3]


def test_verify_chain_text_output(store, db_url):
    _seed(db_url)
    result = _invoke("verify", "chain", "--database-url", db_url)
    assert result.exit_code == 0
    assert "hash chain intact" in result.stdout


def test_verify_immutability_missing(store, db_url):
    result = _invoke("verify", "immutability", "--database-url", db_url)
    assert result.exit_code == 2
    assert "MISSING" in result.stdout


def test_log_tail_and_query(store, db_url):
    _seed(db_url, 5)
    result = _invoke("log", "tail", "--database-url", db_url, "--lines", "2", "--json")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [e["id"] for e in data["entries"]] == [5, 4]

    result = _invoke("log", "query", "--database-url", db_url, "--action", "READ.3", "--json")
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["pagination"]["total"] == 1
    assert data["entries"][0]["action"] == "phi.read.3"

    result = _invoke("log", "query", "--database-url", db_url, "--status", "failure")
    assert result.exit_code == 0
    assert "Total" in result.stdout


def test_checkpoint_create_and_verify(store, db_url, cli_env):
    _seed(db_url)
    result = _invoke("checkpoint", "create", "--database-url", db_url, "--generate-key", "--json")
    assert result.exit_code == 0, result.stdout
    created = json.loads(result.stdout)
    assert created["entry_id"] == 3

    result = _invoke("checkpoint", "verify", "--database-url", db_url, "--json")
    assert result.exit_code == 0, result.stdout
    assert json.loads(result.stdout)["valid"] is True

    with store.engine.begin() as conn:
        conn.execute(update(audit_logs).where(audit_logs.c.id == 3).values(status="failure"))
    result = _invoke("checkpoint", "verify", "--database-url", db_url, "--json")
    assert result.exit_code == 2
    assert json.loads(result.stdout)["headHashValid"] is False


def test_checkpoint_create_without_key(store, db_url, cli_env):
    _seed(db_url)
    result = _invoke("checkpoint", "create", "--database-url", db_url, "--json")
    assert result.exit_code == 2
    assert "signing key not found" in json.loads(result.stdout)["error"]


def test_sigint_sets_cancel_and_restores_handler():
    cancel = threading.Event()
    before = signal.getsignal(signal.SIGINT)
    with verify_commands.cancel_on_sigint(cancel):
        signal.raise_signal(signal.SIGINT)
    assert cancel.is_set()
    assert signal.getsignal(signal.SIGINT) is before


def test_verify_chain_ctrl_c_cancels_scan(store, db_url, monkeypatch):
    _seed(db_url)

    def interrupted(store, batch_size=1000, cancel=None):
        signal.raise_signal(signal.SIGINT)
        return verify_integrity(store, batch_size=batch_size, cancel=cancel)

    monkeypatch.setattr(verify_commands, "verify_integrity", interrupted)
    result = _invoke("verify", "chain", "--database-url", db_url)
    assert result.exit_code == 2
    assert "cancelled" in result.output
