"""
Carrier Relay Commands

Command implementations for the CLI.
Each module handles a logical group of related commands.
"""

from . import carrier, journal

__all__ = [
    "carrier",
    "journal",
]
