"""Character sync for the EVE tracker.

Modules:
    engine — Per-character ESI sync with per-part failure isolation
"""

from src.sync.engine import CharacterSyncEngine, SyncResult

__all__ = ["CharacterSyncEngine", "SyncResult"]
