"""CLI entry point for modelrepo: ``python -m modelrepo``."""

import sys

from modelrepo.cli import main

if __name__ == "__main__":
    sys.exit(main())
