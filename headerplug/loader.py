"""Host that drives JSON-RPC header plugins found in a directory."""

from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys
import uuid
from dataclasses import dataclass

from headerplug.jsonrpc import JsonRpcClient, RPCError
from headerplug.policy_host import is_executable

log = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-Id"
REQUEST_ID_HEADER = "RequestID"


@dataclass
class PluginClient:
    """A running plugin executable and the RPC client talking to it."""

    name: str
    client: JsonRpcClient
    process: subprocess.Popen

    def close(self) -> None:
        """Shut the connection down and wait for the plugin to exit."""
        self.client.close()
        self.process.wait()
        if self.process.stdout is not None:
            self.process.stdout.close()


def load_plugin(path: str | os.PathLike) -> tuple[JsonRpcClient, subprocess.Popen]:
    """Start the plugin executable at ``path`` and return its RPC client and process."""
    process = subprocess.Popen(
        [os.fspath(path)],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
        bufsize=1,
    )
    return JsonRpcClient(process.stdout, process.stdin), process


def load_clients(directory: str | os.PathLike) -> list[PluginClient]:
    """Start every executable file in ``directory``, in name order."""
    with os.scandir(directory) as iterator:
        entries = sorted(iterator, key=lambda entry: entry.name)
    clients: list[PluginClient] = []
    try:
        for entry in entries:
            if entry.is_dir() or not is_executable(entry.path):
                continue
            client, process = load_plugin(entry.path)
            clients.append(PluginClient(entry.name, client, process))
    except BaseException:
        for started in clients:
            started.close()
        raise
    return clients


def _format_headers(headers: dict[str, str] | None) -> str:
    if headers is None:
        return "Headers(nil)"
    body = ", ".join(
        f"{json.dumps(key)}:{json.dumps(value)}" for key, value in sorted(headers.items())
    )
    return f"Headers{{{body}}}"


def process_clients(
    clients: list[PluginClient], headers: dict[str, str] | None
) -> dict[str, str] | None:
    """Offer Add and then Remove to every plugin, threading the headers through."""
    current = headers
    for plugin in clients:
        print(f"-- Processing {plugin.name} --")

        add_args = {"Key": TRACE_HEADER, "Value": "", "Headers": current}
        try:
            after_add = plugin.client.call("Plugin.Add", add_args)
        except RPCError as exc:
            if "not found" not in str(exc):
                log.warning("[%s] AddHeader is not implemented in this plugin: %s", plugin.name, exc)
        else:
            print(f"[{plugin.name}] Add -> {_format_headers(after_add)}")
            current = after_add

        remove_args = {"Key": REQUEST_ID_HEADER, "Headers": current}
        try:
            after_remove = plugin.client.call("Plugin.Remove", remove_args)
        except RPCError as exc:
            if "not found" not in str(exc):
                log.warning(
                    "[%s] RemoveHeader is not implemented in this plugin: %s", plugin.name, exc
                )
        else:
            print(f"[{plugin.name}] Remove -> {_format_headers(after_remove)}")
            current = after_remove
    return current


def main(argv=None) -> int:
    """Load the plugins in a directory and run a fresh request id through them."""
    parser = argparse.ArgumentParser(description="Run JSON-RPC header plugins.")
    parser.add_argument("directory", nargs="?", default="./plugins")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        clients = load_clients(args.directory)
    except OSError as exc:
        log.error("load clients: %s", exc)
        return 1

    try:
        initial = {REQUEST_ID_HEADER: str(uuid.uuid4())}
        final = process_clients(clients, initial)
        print(f"Final headers: {_format_headers(final)}")
    finally:
        for plugin in clients:
            plugin.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())