"""Module entrypoint for ``python -m callspec``."""

from __future__ import annotations

from callspec.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
