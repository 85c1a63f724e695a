#!/usr/bin/env python3
"""
TOS client example

Creates, lists, heads and deletes a bucket using connection settings from
TOS_ENDPOINT, TOS_REGION, TOS_ACCESS_KEY and TOS_SECRET_KEY.

Usage:
    python run.py my-bucket           # run the example against my-bucket
    python run.py -v my-bucket        # with debug logging
"""

import sys
from tosclient.cli import main

if __name__ == "__main__":
    sys.exit(main())
