"""Sample header plugins: policies, JSON-RPC services and script-style functions."""

from __future__ import annotations

import sys
import uuid
from typing import Any, Callable

from headerplug.jsonrpc import JsonRpcServer
from headerplug.policy import HandshakeError, Policy, serve


class MyPolicy(Policy):
    """Stamps X-Added-By with its own name."""

    def process_request_headers(self, headers):
        headers["X-Added-By"] = "MyPolicy"
        return headers


class AddHeaderPolicy(Policy):
    """Adds a custom header."""

    def process_request_headers(self, headers):
        headers["X-Added-By"] = "AddHeaderPolicy"
        return headers


class RemoveHeaderPolicy(Policy):
    """Removes X-To-Remove if present."""

    def process_request_headers(self, headers):
        headers.pop("X-To-Remove", None)
        return headers


class UuidAddHeaderPolicy(Policy):
    """Stamps a fresh UUID into X-Plugin-UUID."""

    def process_request_headers(self, headers):
        headers["X-Plugin-UUID"] = str(uuid.uuid4())
        return headers


class UuidRemoveHeaderPolicy(Policy):
    """Deletes X-Plugin-UUID, then stamps a fresh UUID into X-Removed-By."""

    def process_request_headers(self, headers):
        headers.pop("X-Plugin-UUID", None)
        headers["X-Removed-By"] = str(uuid.uuid4())
        return headers


def _add(params: dict[str, Any]) -> dict[str, str]:
    headers = params.get("Headers")
    if headers is None:
        headers = {}
    value = params.get("Value") or str(uuid.uuid4())
    headers[params.get("Key", "")] = value
    return headers


def _remove(params: dict[str, Any]) -> dict[str, str] | None:
    headers = params.get("Headers")
    if headers is not None:
        headers.pop(params.get("Key", ""), None)
    return headers


class AddPlugin:
    """JSON-RPC service that sets a header, generating a UUID when no value is given."""

    def add(self, params):
        return _add(params)


class RemovePlugin:
    """JSON-RPC service that deletes a header."""

    def remove(self, params):
        headers = _remove(params)
        key = params.get("Key", "")
        print(
            f'removeheader[{uuid.uuid4()}]: removed "{key}" at {sys.argv[0]}',
            file=sys.stderr,
        )
        return headers


class AddRemovePlugin:
    """JSON-RPC service offering both add and remove."""

    def add(self, params):
        return _add(params)

    def remove(self, params):
        headers = _remove(params)
        key = params.get("Key", "")
        sys.stderr.write(f"[addremoveheader] removed '{key}' with id {uuid.uuid4()}")
        sys.stderr.flush()
        return headers


def add_header_process(headers):
    """Set X-Added-By to a fixed marker."""
    headers["X-Added-By"] = "AddHeaderPlugin"
    return headers


def remove_header_process(headers):
    """Delete X-Remove."""
    headers.pop("X-Remove", None)
    return headers


def uuid_add_header_process(headers):
    """Set X-Added-By to a fresh UUID."""
    headers["X-Added-By"] = str(uuid.uuid4())
    return headers


def uuid_remove_header_process(headers):
    """Delete X-Remove and set X-Removed-By to a fresh UUID."""
    headers.pop("X-Remove", None)
    headers["X-Removed-By"] = str(uuid.uuid4())
    return headers


_POLICIES: dict[str, Callable[[], Policy]] = {
    "my-policy": MyPolicy,
    "add-header": AddHeaderPolicy,
    "remove-header": RemoveHeaderPolicy,
    "uuid-add-header": UuidAddHeaderPolicy,
    "uuid-remove-header": UuidRemoveHeaderPolicy,
}

_SERVICES: dict[str, Callable[[], object]] = {
    "add": AddPlugin,
    "remove": RemovePlugin,
    "add-remove": AddRemovePlugin,
}


def main(argv=None) -> int:
    """Run the named plugin on stdin and stdout."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1 or (args[0] not in _POLICIES and args[0] not in _SERVICES):
        names = ", ".join([*_POLICIES, *_SERVICES])
        print(f"usage: plugins NAME  (one of: {names})", file=sys.stderr)
        return 2
    name = args[0]
    if name in _POLICIES:
        try:
            serve(_POLICIES[name]())
        except HandshakeError as exc:
            print(exc, file=sys.stderr)
            return 1
        return 0
    server = JsonRpcServer()
    server.register("Plugin", _SERVICES[name]())
    server.serve(sys.stdin, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())