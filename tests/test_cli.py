import pytest

from scripts.refsync import cli
from scripts.refsync.errors import EXIT_CONFIG, EXIT_EXTRACT, EXIT_LIST_SETS, EXIT_OK, EXIT_PARTIAL_FAILURE
from scripts.refsync.errors import QRadarAPIError, UnexpectedStatusError

from conftest import PREFIX, FakeQRadar

INVENTORY = (
    "host,ip,location,role\n"
    "a,10.0.0.1,east,db\n"
    "b,10.0.0.2,east,db\n"
)


@pytest.fixture
def qradar(monkeypatch):
    fake = FakeQRadar()
    monkeypatch.setattr(cli, "build_client", lambda config: fake)
    return fake


def _run(path, *extra):
    return cli.main([
        "sync", "--url", "https://qradar.example", "--token", "t",
        "--file", path, "--poll-interval", "0", *extra,
    ])


def test_missing_configuration_exits_1(qradar, write_csv):
    assert cli.main(["sync", "--file", write_csv(INVENTORY)]) == EXIT_CONFIG
    assert qradar.calls == []


def test_unreadable_inventory_exits_2(qradar, tmp_path):
    assert _run(str(tmp_path / "nope.csv")) == EXIT_EXTRACT
    assert qradar.calls == []


def test_listing_failure_exits_3(qradar, write_csv, monkeypatch):
    def boom():
        raise QRadarAPIError("connection refused")

    monkeypatch.setattr(qradar, "reference_sets", boom)

    assert _run(write_csv(INVENTORY)) == EXIT_LIST_SETS
    assert qradar.calls == []


def test_end_to_end_sync(qradar, write_csv):
    qradar.sets = {
        PREFIX + "east": ["10.9.9.9"],
        PREFIX + "north - app": ["10.7.7.7"],
        "Unrelated": ["1.2.3.4"],
    }

    assert _run(write_csv(INVENTORY)) == EXIT_OK

    assert qradar.sets == {
        PREFIX + "east": ["10.0.0.1", "10.0.0.2"],
        PREFIX + "east - db": ["10.0.0.1", "10.0.0.2"],
        "Unrelated": ["1.2.3.4"],
    }
    assert ("delete", PREFIX + "north - app", False) in qradar.calls
    assert ("delete", PREFIX + "east", True) in qradar.calls
    assert qradar.ops(PREFIX + "east") == ["delete", "bulk_load"]


def test_partial_failure_exits_4(qradar, write_csv):
    qradar.fail_on[("create", PREFIX + "east - db")] = UnexpectedStatusError("POST", "x", 500, "boom")

    assert _run(write_csv(INVENTORY)) == EXIT_PARTIAL_FAILURE
    assert qradar.sets == {PREFIX + "east": ["10.0.0.1", "10.0.0.2"]}


def test_dry_run_makes_no_changes(qradar, write_csv):
    qradar.sets = {PREFIX + "stale": ["10.7.7.7"]}

    assert _run(write_csv(INVENTORY), "--dry-run") == EXIT_OK
    assert qradar.calls == [("list",)]
    assert qradar.sets == {PREFIX + "stale": ["10.7.7.7"]}


def test_status_table(qradar, write_csv, capsys):
    qradar.sets = {PREFIX + "east": ["10.9.9.9"], PREFIX + "stale": []}

    code = cli.main([
        "status", "--url", "https://q", "--token", "t", "--file", write_csv(INVENTORY),
    ])

    out = capsys.readouterr().out
    assert code == EXIT_OK
    assert "REFERENCE SET" in out
    lines = {line.split("  ")[0].strip(): line.split()[-1] for line in out.splitlines()[2:]}
    assert lines[PREFIX + "east"] == "refresh"
    assert lines[PREFIX + "east - db"] == "create"
    assert lines[PREFIX + "stale"] == "delete"


def test_undecodable_inventory_exits_2(qradar, tmp_path):
    path = tmp_path / "servers.csv"
    path.write_bytes(b"host,ip,location,role\na,10.0.0.1,\xff\xfeeast,db\n")

    assert _run(str(path)) == EXIT_EXTRACT
    assert qradar.calls == []


def test_non_numeric_setting_exits_1(qradar, write_csv, monkeypatch):
    monkeypatch.setenv("QRADAR_POLL_ATTEMPTS", "five")

    assert cli.main([
        "sync", "--url", "https://q", "--token", "t", "--file", write_csv(INVENTORY),
    ]) == EXIT_CONFIG
    assert qradar.calls == []


def test_text_log_format(qradar, write_csv, capsys):
    cli.main([
        "--log-format", "text", "sync", "--url", "https://q", "--token", "t",
        "--file", write_csv(INVENTORY), "--dry-run",
    ])

    err = capsys.readouterr().err
    assert "refsync.cli: Dry run plan:" in err
