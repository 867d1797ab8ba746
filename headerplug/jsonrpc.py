"""Line-delimited JSON-RPC 1.0 server and client for talking to plugins over pipes."""

from __future__ import annotations

import json
import re
from typing import Any, Callable, TextIO

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class RPCError(Exception):
    """An error reported by the remote side or by the connection itself."""


def _python_name(method_name: str) -> str:
    """Map a wire method name such as ``ProcessRequestHeaders`` to ``process_request_headers``."""
    return _CAMEL_BOUNDARY.sub("_", method_name).lower()


class JsonRpcServer:
    """Dispatches ``Service.Method`` requests to registered objects."""

    def __init__(self) -> None:
        self._services: dict[str, object] = {}

    def register(self, name: str, obj: object) -> None:
        """Expose the public methods of ``obj`` under the service ``name``."""
        if not name:
            raise ValueError("rpc: no service name")
        if name in self._services:
            raise ValueError(f"rpc: service already defined: {name}")
        self._services[name] = obj

    def _resolve(self, method: Any) -> Callable[[Any], Any]:
        if not isinstance(method, str):
            raise RPCError(f"rpc: service/method request ill-formed: {method}")
        service_name, dot, method_name = method.rpartition(".")
        if not dot or not service_name or not method_name:
            raise RPCError(f"rpc: service/method request ill-formed: {method}")
        service = self._services.get(service_name)
        if service is None:
            raise RPCError(f"rpc: can't find service {method}")
        attribute = _python_name(method_name)
        func = None if attribute.startswith("_") else getattr(service, attribute, None)
        if not callable(func):
            raise RPCError(f"rpc: can't find method {method}")
        return func

    def handle(self, request: dict) -> dict:
        """Answer one decoded request with a response object."""
        request_id = request.get("id")
        try:
            func = self._resolve(request.get("method"))
            params = request.get("params")
            if not isinstance(params, list) or len(params) != 1:
                raise RPCError("jsonrpc: request body missing params")
            result = func(params[0])
        except Exception as exc:  # every failure is reported to the caller
            return {"id": request_id, "result": None, "error": str(exc)}
        return {"id": request_id, "result": result, "error": None}

    def serve(self, reader: TextIO, writer: TextIO) -> None:
        """Answer requests read line by line until end of input or a malformed request."""
        for line in iter(reader.readline, ""):
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError:
                return
            if not isinstance(request, dict):
                return
            writer.write(json.dumps(self.handle(request)) + "\n")
            writer.flush()


class JsonRpcClient:
    """Synchronous client issuing one request at a time."""

    def __init__(self, reader: TextIO, writer: TextIO) -> None:
        self._reader = reader
        self._writer = writer
        self._seq = 0
        self._closed = False

    def call(self, method: str, params: Any) -> Any:
        """Call ``method`` with ``params`` and return its result, raising RPCError on failure."""
        if self._closed:
            raise RPCError("connection is shut down")
        request_id = self._seq
        self._seq += 1
        message = {"method": method, "params": [params], "id": request_id}
        try:
            self._writer.write(json.dumps(message) + "\n")
            self._writer.flush()
        except (OSError, ValueError) as exc:
            raise RPCError("connection is shut down") from exc
        while True:
            try:
                line = self._reader.readline()
            except (OSError, ValueError) as exc:
                raise RPCError("connection is shut down") from exc
            if not line:
                raise RPCError("unexpected EOF")
            if not line.strip():
                continue
            try:
                response = json.loads(line)
            except json.JSONDecodeError as exc:
                raise RPCError(f"invalid response: {line.strip()}") from exc
            if not isinstance(response, dict) or response.get("id") != request_id:
                continue
            error = response.get("error")
            if error is not None:
                raise RPCError(str(error))
            return response.get("result")

    def close(self) -> None:
        """Shut the connection down; later calls fail."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._writer, "close", None)
        if close is not None:
            try:
                close()
            except OSError:
                pass