"""Entry point for autoquality when run as a module."""

import sys

from autoquality.cli import main

if __name__ == "__main__":
    sys.exit(main())
