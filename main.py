"""Entry point for running the mailroom CLI from a source checkout."""

from mailroom.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
