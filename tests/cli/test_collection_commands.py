import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from loomsync.cli import collection as collection_module
from loomsync.cli.main import create_app
from loomsync.core.client import SyncClient
from loomsync.core.data.cache import InMemoryCollectionCache
from loomsync.core.data.remote import InMemoryRemoteStore


class ClientFactory:
    """Builds clients sharing one remote and one cache across CLI invocations."""

    def __init__(self, remote: InMemoryRemoteStore) -> None:
        self.remote = remote
        self.cache = InMemoryCollectionCache()
        self.calls: list[tuple[Path | None, Path | None]] = []

    def __call__(self, remote_path: Path | None, config_path: Path | None) -> SyncClient:
        self.calls.append((remote_path, config_path))
        config = {"remote": {"base_delay": 0.01}, "bus": {"channel": "cli-tests"}}
        return SyncClient(self.remote, config, cache=self.cache)


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def factory(monkeypatch: pytest.MonkeyPatch) -> ClientFactory:
    remote = InMemoryRemoteStore({"orders": [{"id": "1", "baseQuantity": 40, "rawNotes": "fragile"}, {"id": "2"}]})
    stub = ClientFactory(remote)
    monkeypatch.setattr(collection_module, "get_client", stub)
    return stub


def _rows(output: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in output.splitlines() if line.strip()]


def test_show_lists_records(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(app, ["--format", "jsonl", "collection", "--remote", "remote.json", "show", "orders"])

    assert result.exit_code == 0, result.output
    rows = _rows(result.stdout)
    assert [row["id"] for row in rows] == ["1", "2"]
    assert rows[0]["note"] == "fragile"
    assert rows[0]["quantity"] == 40.0
    assert factory.calls == [(Path("remote.json"), None)]


def test_show_reports_cached_fallback(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    runner.invoke(app, ["collection", "show", "orders"])
    factory.remote.set_offline()

    result = runner.invoke(app, ["--format", "jsonl", "collection", "show", "orders", "--force"])

    assert result.exit_code == 0, result.output
    assert [row["id"] for row in _rows(result.stdout)] == ["1", "2"]
    assert "Remote store unavailable" in result.stderr


def test_update_applies_lifecycle_patch(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(
        app,
        [
            "--format",
            "jsonl",
            "collection",
            "update",
            "orders",
            "1",
            "--received",
            "40",
            "--received-date",
            "2024-01-05",
        ],
    )

    assert result.exit_code == 0, result.output
    row = _rows(result.stdout)[0]
    assert row["received"] == 40.0
    assert row["note"] == "fragile"
    assert factory.remote.rows("orders")[0]["raw_notes"] == "fragile | Received: 40kg on 2024-01-05"


def test_update_can_clear_fields(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    runner.invoke(app, ["collection", "update", "orders", "1", "--dispatched", "5"])

    result = runner.invoke(app, ["--format", "jsonl", "collection", "update", "orders", "1", "--clear", "dispatched"])

    assert result.exit_code == 0, result.output
    assert _rows(result.stdout)[0]["dispatched"] is None


def test_update_rejects_unknown_clear_field(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(app, ["collection", "update", "orders", "1", "--clear", "quantity"])

    assert result.exit_code != 0
    assert factory.remote.upsert_calls == 0


def test_update_of_missing_record_exits_with_validation_code(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(app, ["collection", "update", "orders", "99", "--dispatched", "1"])

    assert result.exit_code == 10
    error = json.loads(result.stderr.splitlines()[-1])["error"]
    assert error["code"] == "RECORD_NOT_FOUND"
    assert error["details"] == {"collection_key": "orders", "record_id": "99"}


def test_update_rejects_tag_text_in_note(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(app, ["collection", "update", "orders", "1", "--note", "Received: 3kg"])

    assert result.exit_code == 10
    assert factory.remote.upsert_calls == 0


def test_pending_and_retry(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    runner.invoke(app, ["collection", "show", "orders"])
    factory.remote.fail_writes = True
    update = runner.invoke(app, ["collection", "update", "orders", "2", "--received", "1"])
    assert update.exit_code == 0, update.output
    assert "saved locally" in update.stderr

    pending = runner.invoke(app, ["--format", "jsonl", "collection", "pending", "orders"])
    assert _rows(pending.stdout) == [{"id": "2", "change": "write", "raw_notes": "Received: 1kg"}]

    failed = runner.invoke(app, ["--format", "jsonl", "collection", "retry", "orders"])
    assert failed.exit_code == 20

    factory.remote.fail_writes = False
    retried = runner.invoke(app, ["--format", "jsonl", "collection", "retry", "orders"])
    assert retried.exit_code == 0, retried.output
    assert _rows(retried.stdout) == [{"id": "2", "status": "confirmed"}]


def test_watch_prints_initial_snapshot(runner: CliRunner, factory: ClientFactory) -> None:
    app = create_app()
    result = runner.invoke(app, ["--format", "jsonl", "collection", "watch", "orders", "--duration", "0.05"])

    assert result.exit_code == 0, result.output
    assert [row["id"] for row in _rows(result.stdout)] == ["1", "2"]


def test_missing_remote_is_a_usage_error(runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOOMSYNC_REMOTE_PATH", raising=False)
    app = create_app()
    result = runner.invoke(app, ["collection", "show", "orders"])

    assert result.exit_code != 0


def test_configured_log_file_receives_engine_records(runner: CliRunner, factory: ClientFactory, tmp_path: Path) -> None:
    log_file = tmp_path / "loomsync.jsonl"
    config = tmp_path / "config.toml"
    config.write_text(f'[logging]\nlevel = "INFO"\nfile = "{log_file.as_posix()}"\n', encoding="utf-8")
    app = create_app()

    result = runner.invoke(app, ["--config", str(config), "--format", "jsonl", "collection", "show", "orders"])

    assert result.exit_code == 0, result.output
    messages = [json.loads(line)["message"] for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert "adopted remote collection" in messages
    assert factory.calls == [(None, config)]
