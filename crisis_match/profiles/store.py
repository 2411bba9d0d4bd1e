"""
Responder profile store.

The matcher reads profiles through the async ResponderProfileStore protocol;
persistence lives behind it. InMemoryProfileStore backs tests and the
standalone API.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Protocol

from crisis_match.models.profile import ResponderProfile


class ResponderProfileStore(Protocol):
    async def get(self, responder_id: str) -> Optional[ResponderProfile]:
        ...

    async def get_many(self, responder_ids: Iterable[str]) -> Dict[str, ResponderProfile]:
        ...

    async def list_all(self) -> List[ResponderProfile]:
        ...


class InMemoryProfileStore:
    """Dictionary-backed profile store."""

    def __init__(self, profiles: Optional[Iterable[ResponderProfile]] = None):
        self._profiles: Dict[str, ResponderProfile] = {}
        for profile in profiles or []:
            self.upsert(profile)

    def upsert(self, profile: ResponderProfile) -> None:
        self._profiles[profile.responder_id] = profile

    def remove(self, responder_id: str) -> bool:
        return self._profiles.pop(responder_id, None) is not None

    async def get(self, responder_id: str) -> Optional[ResponderProfile]:
        await asyncio.sleep(0)
        return self._profiles.get(responder_id)

    async def get_many(self, responder_ids: Iterable[str]) -> Dict[str, ResponderProfile]:
        await asyncio.sleep(0)
        return {
            rid: self._profiles[rid] for rid in responder_ids if rid in self._profiles
        }

    async def list_all(self) -> List[ResponderProfile]:
        await asyncio.sleep(0)
        return list(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
