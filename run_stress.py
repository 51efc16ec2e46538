#!/usr/bin/env python3
"""
Root launcher for a stress run.
Equivalent to the `txflood` console script.
"""
import os
import sys

# Ensure the current directory is in the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from txflood.cli import main

if __name__ == "__main__":
    sys.exit(main())
