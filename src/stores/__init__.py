"""Character, corporation and session storage.

Implementations:
    PostgresCharacterStore — asyncpg-backed production store
    InMemoryCharacterStore — dict-backed store for tests and local runs
"""

from src.stores.base import CharacterStore
from src.stores.inmemory import InMemoryCharacterStore
from src.stores.postgres import PostgresCharacterStore

__all__ = [
    "CharacterStore",
    "InMemoryCharacterStore",
    "PostgresCharacterStore",
]
