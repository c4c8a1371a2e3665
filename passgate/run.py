"""Programmatic uvicorn entry point for Passgate.

Usage:
    python -m passgate.run     # reads .passgate/config.yaml
    passgate                   # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from passgate.config import load_config

# Announces are tiny and frequent; cap concurrency well above tracker load.
UVICORN_LIMIT_CONCURRENCY: int = 1000

UVICORN_BACKLOG: int = 2048

# Tracker clients do not reuse connections; keep idle sockets short-lived.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the Passgate server on the configured host and port.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "passgate.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
