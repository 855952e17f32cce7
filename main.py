"""Entry point for running a plotpipe pipeline file from a checkout."""

from plotpipe.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
