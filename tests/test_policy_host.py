import logging
import os
import sys
import uuid
from pathlib import Path

import pytest

import headerplug
from headerplug.policy_host import discover, is_executable, main, run_plugins

PACKAGE_PARENT = str(Path(headerplug.__file__).resolve().parent.parent)


@pytest.fixture(autouse=True)
def _importable(monkeypatch):
    existing = os.environ.get("PYTHONPATH")
    value = PACKAGE_PARENT if not existing else PACKAGE_PARENT + os.pathsep + existing
    monkeypatch.setenv("PYTHONPATH", value)


def _write_policy(directory, filename, name):
    path = directory / filename
    path.write_text(
        f"#!{sys.executable}\n"
        "import sys\n"
        "from headerplug.plugins import main\n"
        f"sys.exit(main([{name!r}]))\n"
    )
    path.chmod(0o755)
    return path


def _write_shell(directory, filename, body):
    path = directory / filename
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


def test_is_executable(tmp_path):
    script = _write_shell(tmp_path, "run", "exit 0\n")
    data = tmp_path / "data.txt"
    data.write_text("x")
    assert is_executable(script) is True
    assert is_executable(data) is False
    assert is_executable(tmp_path / "missing") is False


def test_discover_filters_and_orders(tmp_path):
    _write_shell(tmp_path, "b_tool", "exit 0\n")
    _write_shell(tmp_path, "a_tool", "exit 0\n")
    _write_shell(tmp_path, ".hidden", "exit 0\n")
    (tmp_path / "notes.txt").write_text("x")
    (tmp_path / "sub").mkdir()
    assert [p.name for p in discover(tmp_path)] == ["a_tool", "b_tool"]
    assert [p.name for p in discover(tmp_path, skip_hidden=False)] == [
        ".hidden",
        "a_tool",
        "b_tool",
    ]


def test_discover_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        discover(tmp_path / "missing")


def test_run_plugins_add_and_remove(tmp_path):
    _write_policy(tmp_path, "a_add", "add-header")
    _write_policy(tmp_path, "b_remove", "remove-header")
    headers = {"Hello": "World", "X-To-Remove": "bye"}
    results = run_plugins(tmp_path, headers)
    assert results == [
        ("a_add", {"Hello": "World", "X-To-Remove": "bye", "X-Added-By": "AddHeaderPolicy"}),
        ("b_remove", {"Hello": "World"}),
    ]
    assert headers == {"Hello": "World", "X-To-Remove": "bye"}


def test_run_plugins_my_policy(tmp_path):
    _write_policy(tmp_path, "plugin", "my-policy")
    results = run_plugins(tmp_path, {"Hello": "World"})
    assert results == [("plugin", {"Hello": "World", "X-Added-By": "MyPolicy"})]


def test_run_plugins_skips_broken_executables(tmp_path, caplog):
    caplog.set_level(logging.INFO)
    _write_shell(tmp_path, "a_chatty", "echo hello\n")
    _write_shell(tmp_path, "b_silent", "exit 0\n")
    _write_policy(tmp_path, "c_add", "add-header")
    results = run_plugins(tmp_path, {"Hello": "World"})
    assert [name for name, _ in results] == ["c_add"]
    assert "failed to start client" in caplog.text


def test_run_plugins_each_gets_fresh_copy(tmp_path):
    _write_policy(tmp_path, "a_uuid_add", "uuid-add-header")
    _write_policy(tmp_path, "b_uuid_remove", "uuid-remove-header")
    results = dict(run_plugins(tmp_path, {"Host-UUID": "host"}, skip_hidden=False))
    added = results["a_uuid_add"]
    removed = results["b_uuid_remove"]
    assert set(added) == {"Host-UUID", "X-Plugin-UUID"}
    assert str(uuid.UUID(added["X-Plugin-UUID"])) == added["X-Plugin-UUID"]
    assert set(removed) == {"Host-UUID", "X-Removed-By"}
    assert str(uuid.UUID(removed["X-Removed-By"])) == removed["X-Removed-By"]


def test_main_runs_directory(tmp_path):
    _write_policy(tmp_path, "add", "add-header")
    assert main([str(tmp_path)]) == 0
    assert main([str(tmp_path), "--extended"]) == 0


def test_main_missing_directory_fails(tmp_path):
    assert main([str(tmp_path / "missing")]) == 1