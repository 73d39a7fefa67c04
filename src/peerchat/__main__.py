"""
PeerChat - Entry point for python -m peerchat.

Created by orpheus497
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
