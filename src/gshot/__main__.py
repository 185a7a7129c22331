#!/usr/bin/env python3
"""
gshot - entry point for python -m gshot
"""

from gshot.cli import main

if __name__ == "__main__":
    main()
