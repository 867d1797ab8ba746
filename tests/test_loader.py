import os
import sys
import uuid
from pathlib import Path

import pytest

import headerplug
from headerplug.loader import (
    PluginClient,
    load_clients,
    load_plugin,
    main,
    process_clients,
)

PACKAGE_PARENT = str(Path(headerplug.__file__).resolve().parent.parent)


@pytest.fixture(autouse=True)
def _importable(monkeypatch):
    existing = os.environ.get("PYTHONPATH")
    value = PACKAGE_PARENT if not existing else PACKAGE_PARENT + os.pathsep + existing
    monkeypatch.setenv("PYTHONPATH", value)


def _write_plugin(directory, filename, service):
    path = directory / filename
    path.write_text(
        f"#!{sys.executable}\n"
        "import sys\n"
        "from headerplug.plugins import main\n"
        f"sys.exit(main([{service!r}]))\n"
    )
    path.chmod(0o755)
    return path


def _close_all(clients):
    for plugin in clients:
        plugin.close()


def test_load_clients_skips_directories_and_non_executables(tmp_path):
    _write_plugin(tmp_path, "b_add", "add")
    (tmp_path / "a_data.txt").write_text("not a plugin")
    (tmp_path / "nested").mkdir()
    clients = load_clients(tmp_path)
    try:
        assert [plugin.name for plugin in clients] == ["b_add"]
    finally:
        _close_all(clients)


def test_load_clients_orders_by_name(tmp_path):
    _write_plugin(tmp_path, "zz_remove", "remove")
    _write_plugin(tmp_path, "aa_add", "add")
    clients = load_clients(tmp_path)
    try:
        assert [plugin.name for plugin in clients] == ["aa_add", "zz_remove"]
    finally:
        _close_all(clients)


def test_load_clients_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        load_clients(tmp_path / "missing")


def test_add_plugin_stamps_trace_id(tmp_path, capsys):
    _write_plugin(tmp_path, "add", "add")
    clients = load_clients(tmp_path)
    try:
        result = process_clients(clients, {"RequestID": "abc"})
    finally:
        _close_all(clients)
    assert result["RequestID"] == "abc"
    assert set(result) == {"RequestID", "X-Trace-Id"}
    assert str(uuid.UUID(result["X-Trace-Id"])) == result["X-Trace-Id"]
    assert "-- Processing add --" in capsys.readouterr().out


def test_add_then_remove_drops_request_id(tmp_path):
    _write_plugin(tmp_path, "a_add", "add")
    _write_plugin(tmp_path, "b_remove", "remove")
    clients = load_clients(tmp_path)
    try:
        result = process_clients(clients, {"RequestID": "abc"})
    finally:
        _close_all(clients)
    assert set(result) == {"X-Trace-Id"}


def test_add_remove_plugin_does_both(tmp_path):
    _write_plugin(tmp_path, "both", "add-remove")
    clients = load_clients(tmp_path)
    try:
        result = process_clients(clients, {"RequestID": "abc", "Keep": "me"})
    finally:
        _close_all(clients)
    assert set(result) == {"Keep", "X-Trace-Id"}
    assert result["Keep"] == "me"


def test_remove_only_plugin_leaves_other_headers(tmp_path):
    _write_plugin(tmp_path, "remove", "remove")
    clients = load_clients(tmp_path)
    try:
        result = process_clients(clients, {"RequestID": "abc", "Other": "x"})
    finally:
        _close_all(clients)
    assert result == {"Other": "x"}


def test_load_plugin_answers_calls_and_exits_cleanly(tmp_path):
    path = _write_plugin(tmp_path, "add", "add")
    client, process = load_plugin(path)
    plugin = PluginClient("add", client, process)
    reply = client.call("Plugin.Add", {"Key": "K", "Value": "V", "Headers": {}})
    plugin.close()
    assert reply == {"K": "V"}
    assert process.returncode == 0


def test_main_prints_final_headers(tmp_path, capsys):
    _write_plugin(tmp_path, "add", "add")
    assert main([str(tmp_path)]) == 0
    out = capsys.readouterr().out
    final_line = [line for line in out.splitlines() if line.startswith("Final headers:")]
    assert len(final_line) == 1
    assert "X-Trace-Id" in final_line[0]
    assert "RequestID" in final_line[0]


def test_main_missing_directory_fails(tmp_path):
    assert main([str(tmp_path / "missing")]) == 1