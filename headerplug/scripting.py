"""Host that runs header-processing scripts and passes headers through them.

A script is a Python file that binds a top-level name ``process``. The host
runs it in its own directory as a separate interpreter, writes the headers as
a JSON object to its standard input and reads the processed headers as a JSON
object from its standard output.
"""

from __future__ import annotations

import argparse
import ast
import json
import logging
import os
import subprocess
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

log = logging.getLogger(__name__)

ENTRY_POINT = "process"
SCRIPT_SUFFIX = ".py"


class ScriptError(Exception):
    """A script could not be loaded or returned something unusable."""


@dataclass(frozen=True)
class ScriptPlugin:
    """A checked script ready to be run."""

    path: Path

    def process(self, headers: dict[str, str]) -> dict[str, str]:
        """Run the script over ``headers`` and return what it produced."""
        completed = subprocess.run(
            [sys.executable, self.path.name],
            cwd=self.path.parent,
            input=json.dumps(dict(headers)),
            capture_output=True,
            text=True,
        )
        if completed.returncode != 0:
            lines = completed.stderr.strip().splitlines()
            detail = lines[-1] if lines else f"exit status {completed.returncode}"
            raise ScriptError(f"{self.path}: {detail}")
        try:
            result = json.loads(completed.stdout)
        except json.JSONDecodeError as exc:
            raise ScriptError(f"{self.path}: unreadable output: {exc}") from exc
        if not isinstance(result, dict):
            raise ScriptError(f"unexpected type from {ENTRY_POINT}: {type(result).__name__}")
        return result


def _binds_entry_point(tree: ast.Module) -> bool:
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name == ENTRY_POINT:
            return True
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            if any((alias.asname or alias.name) == ENTRY_POINT for alias in node.names):
                return True
        if isinstance(node, ast.Assign):
            if any(isinstance(t, ast.Name) and t.id == ENTRY_POINT for t in node.targets):
                return True
    return False


def load_script(path: str | os.PathLike) -> ScriptPlugin:
    """Check the script at ``path`` and return it as a plugin."""
    path = Path(path)
    try:
        source = path.read_text()
        tree = ast.parse(source, filename=str(path))
    except (OSError, SyntaxError, ValueError) as exc:
        raise ScriptError(f"{path}: {exc}") from exc
    if not _binds_entry_point(tree):
        raise ScriptError(f"{path}: no {ENTRY_POINT!r} defined")
    return ScriptPlugin(path)


def _sorted_entries(directory: Path) -> list[Path]:
    return sorted(directory.iterdir(), key=lambda entry: entry.name)


def find_scripts(directory: str | os.PathLike, nested: bool = False) -> list[Path]:
    """List scripts in ``directory``, or in each of its sub-directories when ``nested``."""
    root = Path(directory)
    if not nested:
        return [
            entry
            for entry in _sorted_entries(root)
            if not entry.is_dir() and entry.name.endswith(SCRIPT_SUFFIX)
        ]
    scripts: list[Path] = []
    for sub in _sorted_entries(root):
        if not sub.is_dir():
            continue
        try:
            children = _sorted_entries(sub)
        except OSError:
            continue
        scripts.extend(child for child in children if child.name.endswith(SCRIPT_SUFFIX))
    return scripts


def run_scripts(
    directory: str | os.PathLike,
    headers: Mapping[str, str],
    nested: bool = False,
) -> list[tuple[str, dict[str, str]]]:
    """Give each script its own copy of ``headers`` and collect what it returns."""
    results: list[tuple[str, dict[str, str]]] = []
    for path in find_scripts(directory, nested):
        log.info("Loading plugin %s…", path)
        try:
            plugin = load_script(path)
        except ScriptError as exc:
            log.warning(" load error: %s", exc)
            continue
        try:
            output = plugin.process(dict(headers))
        except (ScriptError, OSError) as exc:
            log.warning(" plugin error: %s", exc)
            continue
        log.info(" plugin %s output: %s", path.name, output)
        results.append((path.name, output))
    return results


def main(argv=None) -> int:
    """Run sample headers through every script in a plugins directory."""
    parser = argparse.ArgumentParser(description="Run header scripts over sample headers.")
    parser.add_argument("directory", nargs="?")
    parser.add_argument(
        "--nested",
        action="store_true",
        help="look for scripts one level down and stamp a Host-UUID header",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    if args.nested:
        directory = args.directory or os.path.join("..", "plugins")
        headers = {"Host-UUID": str(uuid.uuid4()), "Hello": "World", "X-Remove": "bye"}
        log.info("Scanning plugins in %s", directory)
    else:
        directory = args.directory or "./plugins"
        headers = {"Hello": "World", "X-Remove": "bye"}

    try:
        run_scripts(directory, headers, nested=args.nested)
    except OSError as exc:
        log.error("failed to read plugins dir: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())