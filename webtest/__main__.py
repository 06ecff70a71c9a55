"""Module entry point for ``python -m webtest``."""

from webtest.cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
