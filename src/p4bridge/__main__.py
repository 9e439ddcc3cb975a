"""p4bridge entry point.

Supports: python -m p4bridge
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
