"""Entry point for ``python -m ftpsclient``."""

import sys

from ftpsclient.cli import main

if __name__ == "__main__":
    sys.exit(main())
