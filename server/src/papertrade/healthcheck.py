"""
Healthcheck module for the ledger service container.

This script is used by the Docker healthcheck to verify that the
service can start and import its dependencies.  Liveness of the
running API is served separately at ``GET /health``.
"""

import sys


def main() -> None:
    try:
        import papertrade.main  # noqa: F401
    except Exception as exc:  # pragma: no cover - healthcheck only
        print(f"Import error: {exc}", file=sys.stderr)
        sys.exit(1)
    print("ok")


if __name__ == "__main__":
    main()
