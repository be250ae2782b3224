"""Entry point for ``python -m binstaller``."""

import sys

from binstaller.cli import main

if __name__ == "__main__":
    sys.exit(main())
