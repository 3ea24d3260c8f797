"""MatchMonkey - Similar-music discovery and library matching engine

Discovers related artists and tracks through external similarity services,
matches them against a local catalog and emits playlists or queue entries.
"""

__version__ = "1.0.0"
__author__ = "MatchMonkey Contributors"

__all__ = ["main", "MatchMonkeyEngine"]
