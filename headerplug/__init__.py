"""Header-processing plugins run as child processes over JSON-RPC or as scripts."""

__version__ = "0.1.0"