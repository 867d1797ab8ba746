"""Host that starts policy plugin executables and runs headers through them."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Mapping

from headerplug.jsonrpc import RPCError
from headerplug.policy import HandshakeError, PluginProcess

log = logging.getLogger(__name__)


def is_executable(path: str | os.PathLike) -> bool:
    """True when ``path`` exists and has any execute permission bit set."""
    try:
        mode = os.stat(path).st_mode
    except OSError:
        return False
    return bool(mode & 0o111)


def discover(directory: str | os.PathLike, skip_hidden: bool = True) -> list[Path]:
    """List the executable files in ``directory`` in name order."""
    with os.scandir(directory) as iterator:
        entries = sorted(iterator, key=lambda entry: entry.name)
    return [
        Path(entry.path)
        for entry in entries
        if not entry.is_dir()
        and not (skip_hidden and entry.name.startswith("."))
        and is_executable(entry.path)
    ]


def run_plugins(
    directory: str | os.PathLike,
    headers: Mapping[str, str],
    skip_hidden: bool = True,
) -> list[tuple[str, dict[str, str]]]:
    """Give each plugin its own copy of ``headers`` and collect what it returns."""
    results: list[tuple[str, dict[str, str]]] = []
    for path in discover(directory, skip_hidden):
        log.info("loading plugin %s…", path.name)
        with PluginProcess(path) as plugin:
            try:
                policy = plugin.dispense()
            except (HandshakeError, OSError) as exc:
                log.warning(" failed to start client: %s", exc)
                continue
            try:
                output = policy.process_request_headers(dict(headers))
            except RPCError as exc:
                log.warning(" plugin error: %s", exc)
                continue
        log.info(" plugin %s returned: %s", path.name, output)
        results.append((path.name, output))
    return results


def main(argv=None) -> int:
    """Run sample headers through every policy plugin in a directory."""
    parser = argparse.ArgumentParser(description="Run policy plugins over sample headers.")
    parser.add_argument("directory", nargs="?", default="plugins")
    parser.add_argument(
        "--extended",
        action="store_true",
        help="start from a Host-UUID header and include hidden files",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    if args.extended:
        headers = {"Host-UUID": str(uuid.uuid4())}
        skip_hidden = False
    else:
        headers = {"Hello": "World", "X-To-Remove": "bye"}
        skip_hidden = True

    try:
        run_plugins(args.directory, headers, skip_hidden)
    except OSError as exc:
        log.error("failed to read plugins dir: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())