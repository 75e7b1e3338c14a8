"""Access-token lifecycle for tracked characters.

The TokenManager is the only component that renews tokens.  Both the ESI
client (on demand, when a token has already expired) and the token refresh
worker (ahead of time, inside the lookahead window) go through ``_renew`` so
that renewals of one character are serialized within the process: after
waiting for the lock the stored expiry is re-read, and a token that another
caller already renewed is not renewed again.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable

from src.errors import StorageError
from src.esi.sso import SsoClient
from src.models.base import utc_now
from src.models.characters import TrackedCharacter
from src.stores.base import CharacterStore

logger = logging.getLogger("evetracker.esi.tokens")


class TokenManager:
    """Resolve valid access tokens, renewing through EVE SSO when needed."""

    def __init__(
        self,
        store: CharacterStore,
        sso: SsoClient,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._sso = sso
        self._clock = clock
        # one lock per character id, never pruned; bounded by the characters table
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _load(self, character_id: int) -> TrackedCharacter:
        character = await self._store.get_character(character_id)
        if character is None:
            raise StorageError(f"Character {character_id} not found")
        return character

    async def get_access_token(self, character_id: int) -> str:
        """Return a usable access token, renewing it first if it has expired.

        Raises:
            CredentialExpiredError: The refresh token was rejected.
            RemoteApiError:         SSO could not be reached.
            StorageError:           The character could not be read or saved.
        """
        character = await self._load(character_id)
        now = self._clock()
        if character.token_expired(now):
            logger.info(
                "Access token for %s (%s) expired at %s, renewing",
                character.name, character_id, character.token_expiry.isoformat(),
            )
            character = await self.renew(character_id, unless_valid_after=now)
        return character.access_token

    async def renew(
        self, character_id: int, unless_valid_after: datetime | None = None
    ) -> TrackedCharacter:
        """Renew a character's token pair and persist it.

        Args:
            character_id:       Character to renew.
            unless_valid_after: Skip the exchange when the stored token already
                                expires after this instant (checked under the
                                per-character lock).  None always renews.

        Returns:
            The character as stored after the call.
        """
        character, _ = await self._renew(character_id, unless_valid_after)
        return character

    async def ensure_valid_until(self, character_id: int, threshold: datetime) -> bool:
        """Renew unless the stored token already outlives ``threshold``.

        Returns:
            True if an SSO exchange took place, False if the token was left alone.
        """
        _, exchanged = await self._renew(character_id, threshold)
        return exchanged

    async def _renew(
        self, character_id: int, unless_valid_after: datetime | None
    ) -> tuple[TrackedCharacter, bool]:
        async with self._locks[character_id]:
            character = await self._load(character_id)
            if unless_valid_after is not None and character.token_expiry > unless_valid_after:
                logger.debug(
                    "Token for %s already valid until %s, not renewing",
                    character_id, character.token_expiry.isoformat(),
                )
                return character, False

            tokens = await self._sso.refresh(character_id, character.refresh_token)
            updated = await self._store.update_tokens(
                character_id,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_expiry=tokens.expires_at,
            )
            logger.info(
                "Renewed token for %s (%s), valid until %s",
                updated.name, character_id, updated.token_expiry.isoformat(),
            )
            return updated, True
