"""Configuration objects and helpers for livetrace.

Settings live in a small YAML file (see ``livetrace.example.yaml``) that names
the server URL, the fields to subscribe to and a few display knobs. The
``LIVETRACE_URL`` environment variable overrides the URL.
"""

from .runtime import StreamConfig, config_from_mapping, load_config

__all__ = ["StreamConfig", "config_from_mapping", "load_config"]
