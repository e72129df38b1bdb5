"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "hls-accelerator",
    "environment": "dev",
    "http": {
        "timeout_seconds": 30.0,
        "follow_redirects": True,
        "user_agent": DEFAULT_USER_AGENT,
        "headers": {},
        "max_concurrent_upstream": 50,
    },
    "proxy": {
        "port": 8084,
        "public_base_url": None,
    },
    "aria2": {
        "rpc_url": "http://localhost:6800/jsonrpc",
        "secret": None,
        "timeout_seconds": 10.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "dir": "./cache",
        "incomplete_suffix": ".aria2",
        "database_path": None,  # Derived from cache.dir in schema.py
    },
    "background": {
        "drain_timeout_seconds": 10.0,
    },
}
