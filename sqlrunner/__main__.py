"""Entry point for `python -m sqlrunner`."""

from __future__ import annotations

from sqlrunner.cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
