[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "headerplug"
version = "0.1.0"
description = "Header-processing plugins run as subprocesses over JSON-RPC or as scripts"
requires-python = ">=3.10"
dependencies = []
keywords = ["plugins", "headers", "json-rpc", "subprocess", "policy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
headerplug-plugin = "headerplug.plugins:main"
headerplug-loader = "headerplug.loader:main"
headerplug-policy-host = "headerplug.policy_host:main"
headerplug-scripting = "headerplug.scripting:main"

[tool.hatch.build.targets.wheel]
packages = ["headerplug"]

[tool.pytest.ini_options]
addopts = "-ra"
