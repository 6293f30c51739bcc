#!/usr/bin/env python3
"""
Main entry point for the yaru CLI.

This delegates to the UI layer in yaru.ui.cli to keep the
console script mapping stable.
"""

from yaru.ui.cli import run as yaru


if __name__ == "__main__":
    yaru()
