# headerplug

A small framework for running header-processing plugins. A host passes a
mapping of request headers through each plugin it finds in a directory and
reports what comes back. Every plugin runs in its own process. There are
three kinds:

- **Policy plugins** (`headerplug.policy`, `headerplug.policy_host`):
  executables that serve a `Policy` over their stdin and stdout. The host
  sets the environment variable `POLICY_PLUGIN=policy`. The plugin checks it
  with `check_handshake` and answers with a handshake line. After that the
  host calls `process_request_headers(headers)` as a JSON-RPC request.
- **JSON-RPC plugins** (`headerplug.jsonrpc`, `headerplug.loader`):
  executables that speak line-delimited JSON-RPC on stdin and stdout and
  offer `Plugin.Add`, `Plugin.Remove`, or both.
- **Script plugins** (`headerplug.scripting`): Python files (`.py`) that
  bind a top-level name `process`. The host checks for that name without
  running the file. It then runs the file with the current interpreter, in
  the file's own directory. The headers go to the script's stdin as a JSON
  object, and the script must write the processed headers to stdout as a
  JSON object.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Bundled plugins

`headerplug.plugins` contains ready-made plugins:

- policies: `MyPolicy` and `AddHeaderPolicy` set `X-Added-By`.
  `RemoveHeaderPolicy` deletes `X-To-Remove`. `UuidAddHeaderPolicy` puts a
  fresh UUID in `X-Plugin-UUID`. `UuidRemoveHeaderPolicy` deletes
  `X-Plugin-UUID` and puts a fresh UUID in `X-Removed-By`.
- JSON-RPC services: `AddPlugin` (`Add`), `RemovePlugin` (`Remove`) and
  `AddRemovePlugin` (both). `Add` takes `{"Key", "Value", "Headers"}` and
  sets the key, using a fresh UUID when `Value` is empty. `Remove` takes
  `{"Key", "Headers"}`, deletes the key and writes a line about it to stderr.
- plain functions: `add_header_process`, `remove_header_process`,
  `uuid_add_header_process` and `uuid_remove_header_process`. They work on
  `X-Added-By`, `X-Remove` and `X-Removed-By`.

Serve one of them on stdin and stdout:

```
headerplug-plugin NAME
```

`NAME` is one of `my-policy`, `add-header`, `remove-header`,
`uuid-add-header`, `uuid-remove-header`, `add`, `remove` or `add-remove`.
The first five are policy plugins and refuse to run unless the handshake
variable is set. The last three are JSON-RPC plugins.

The hosts start every executable file in their directory with no
arguments. To use a bundled plugin, give it a small executable wrapper, for
example `plugins/add-header`:

```
#!/bin/sh
exec headerplug-plugin add-header
```

## Commands

Run every executable policy plugin in a directory (`plugins` by default).
Each plugin gets its own copy of `{"Hello": "World", "X-To-Remove": "bye"}`,
and files whose names start with a dot are skipped:

```
headerplug-policy-host [DIRECTORY] [--extended]
```

`--extended` starts from `{"Host-UUID": <fresh uuid>}` instead and does not
skip hidden files.

Run every executable JSON-RPC plugin in a directory (`./plugins` by
default) over `{"RequestID": <fresh uuid>}`:

```
headerplug-loader [DIRECTORY]
```

For each plugin in name order, the loader calls `Plugin.Add` with key
`X-Trace-Id` and an empty value, then `Plugin.Remove` with key `RequestID`.
Each successful call's result becomes the headers passed on, so the plugins
are chained. When a call fails, the headers are left as they were. A
warning is logged unless the error message contains "not found". The
loader prints every step and then `Final headers: ...`.

Run every script plugin in a directory (`./plugins` by default). Each
script gets `{"Hello": "World", "X-Remove": "bye"}`:

```
headerplug-scripting [DIRECTORY] [--nested]
```

`--nested` looks for scripts one level down, in each sub-directory
(`../plugins` by default), and adds a `Host-UUID` header.

## Writing a script plugin

```python
import json
import sys


def process(headers):
    headers["X-Added-By"] = "script"
    return headers


if __name__ == "__main__":
    json.dump(process(json.load(sys.stdin)), sys.stdout)
```

A non-zero exit status, output that is not JSON, or output that is not a
JSON object raises `ScriptError`. The host logs the error and goes on to
the next script.

## Using the library

```python
from headerplug.policy_host import run_plugins

results = run_plugins("plugins", {"Hello": "World", "X-To-Remove": "bye"})
# [(plugin file name, returned headers), ...]
```

```python
from headerplug.policy import PluginProcess

with PluginProcess("plugins/add-header") as plugin:
    print(plugin.dispense().process_request_headers({"Hello": "World"}))
```

```python
from headerplug.loader import load_clients, process_clients

clients = load_clients("plugins")
try:
    final = process_clients(clients, {"RequestID": "abc"})
finally:
    for client in clients:
        client.close()
```

```python
from headerplug.scripting import load_script, run_scripts

plugin = load_script("plugins/addheader.py")
print(plugin.process({"Hello": "World"}))
print(run_scripts("plugins", {"Hello": "World", "X-Remove": "bye"}))
```

To write your own plugin executable, subclass `headerplug.policy.Policy`
and call `headerplug.policy.serve(policy)`. Alternatively, register any
object on a `headerplug.jsonrpc.JsonRpcServer` and call
`serve(sys.stdin, sys.stdout)`. Wire names such as `Plugin.Add` map to the
method `add`.

## What it does not do

Plugins are never loaded into the host's own process: every kind runs as a
child process. The hosts only pass header mappings through plugins and log
or print the results. They are not proxies and do not handle HTTP traffic
or request and response bodies.