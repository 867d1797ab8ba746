"""Header-processing policy interface and its out-of-process plugin transport."""

from __future__ import annotations

import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Sequence, TextIO

from headerplug.jsonrpc import JsonRpcClient, JsonRpcServer

_CORE_PROTOCOL_VERSION = 1
_SERVICE_NAME = "Plugin"


class Policy(ABC):
    """A plugin that rewrites request headers."""

    @abstractmethod
    def process_request_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """Return the processed headers."""


@dataclass(frozen=True)
class HandshakeConfig:
    """Values host and plugin must agree on before talking."""

    protocol_version: int = 1
    magic_cookie_key: str = "POLICY_PLUGIN"
    magic_cookie_value: str = "policy"


HANDSHAKE = HandshakeConfig()


class HandshakeError(Exception):
    """Host and plugin could not agree on how to talk."""


def check_handshake(environ: Mapping[str, str], config: HandshakeConfig = HANDSHAKE) -> None:
    """Raise HandshakeError unless the magic cookie is present in ``environ``."""
    if environ.get(config.magic_cookie_key) != config.magic_cookie_value:
        raise HandshakeError(
            "This binary is a plugin. These are not meant to be executed directly. "
            "Please execute the program that consumes these plugins, which will "
            "load any plugins automatically"
        )


def _handshake_line(config: HandshakeConfig) -> str:
    return f"{_CORE_PROTOCOL_VERSION}|{config.protocol_version}|stdio|-|jsonrpc"


def serve(
    policy: Policy,
    environ: Mapping[str, str] | None = None,
    reader: TextIO | None = None,
    writer: TextIO | None = None,
) -> None:
    """Serve ``policy`` to a host over the given streams (stdin and stdout by default)."""
    check_handshake(os.environ if environ is None else environ, HANDSHAKE)
    reader = sys.stdin if reader is None else reader
    writer = sys.stdout if writer is None else writer
    writer.write(_handshake_line(HANDSHAKE) + "\n")
    writer.flush()
    server = JsonRpcServer()
    server.register(_SERVICE_NAME, policy)
    server.serve(reader, writer)


class PolicyClient(Policy):
    """Host-side view of a policy running in another process."""

    def __init__(self, client: JsonRpcClient) -> None:
        self._client = client

    def process_request_headers(self, headers: dict[str, str]) -> dict[str, str]:
        result = self._client.call(f"{_SERVICE_NAME}.ProcessRequestHeaders", headers)
        return dict(result or {})

    def close(self) -> None:
        self._client.close()


class PluginProcess:
    """A plugin executable started on demand and spoken to over its stdio."""

    def __init__(
        self,
        command: str | os.PathLike | Sequence[str],
        config: HandshakeConfig = HANDSHAKE,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if isinstance(command, (str, os.PathLike)):
            self._command = [os.fspath(command)]
        else:
            self._command = list(command)
        self._config = config
        self._env = env
        self._process: subprocess.Popen | None = None
        self._client: PolicyClient | None = None

    def _fail(self, message: str) -> HandshakeError:
        self.kill()
        return HandshakeError(message)

    def _start(self) -> None:
        env = dict(os.environ if self._env is None else self._env)
        env[self._config.magic_cookie_key] = self._config.magic_cookie_value
        self._process = subprocess.Popen(
            self._command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            env=env,
            text=True,
            bufsize=1,
        )
        line = self._process.stdout.readline().strip()
        if not line:
            raise self._fail("plugin exited before completing handshake")
        parts = line.split("|")
        if len(parts) != 5:
            raise self._fail(f"unrecognized remote plugin message: {line}")
        core, app, network, _address, protocol = parts
        if core != str(_CORE_PROTOCOL_VERSION):
            raise self._fail(f"incompatible core API version with plugin: {core}")
        if app != str(self._config.protocol_version):
            raise self._fail(f"incompatible API version with plugin: {app}")
        if network != "stdio" or protocol != "jsonrpc":
            raise self._fail(f"unsupported plugin transport: {network}/{protocol}")
        self._client = PolicyClient(JsonRpcClient(self._process.stdout, self._process.stdin))

    def dispense(self) -> PolicyClient:
        """Start the plugin if needed and return the policy it serves."""
        if self._client is None:
            self._start()
        return self._client

    def kill(self) -> None:
        """Stop the plugin process and release its pipes."""
        if self._client is not None:
            self._client.close()
            self._client = None
        process, self._process = self._process, None
        if process is None:
            return
        if process.stdin is not None and not process.stdin.closed:
            try:
                process.stdin.close()
            except OSError:
                pass
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()

    def __enter__(self) -> "PluginProcess":
        return self

    def __exit__(self, *args) -> None:
        self.kill()