"""Root conftest: the test environment is in place before settings are imported."""
from __future__ import annotations

import os
from pathlib import Path

ENV_FILE = Path(__file__).resolve().parent / ".env.test"


def _read_env(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip("\"'")
    return values


if ENV_FILE.exists():
    for key, value in _read_env(ENV_FILE).items():
        os.environ.setdefault(key, value)

# ClientSettings also reads .env; pin the API url so a developer's file cannot leak in.
os.environ.setdefault("CHAT_API_URL", "http://chat.test")
