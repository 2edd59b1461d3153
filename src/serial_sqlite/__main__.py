"""Module entrypoint for ``python -m serial_sqlite``."""

from __future__ import annotations

from serial_sqlite.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
