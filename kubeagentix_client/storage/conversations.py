"""Conversation store — durable copy of finished transcripts.

Persistence is a best-effort side channel: nothing in here ever raises into
the session flow. A primary store that fails to open disables persistence,
``get`` treats unreadable records as missing, ``save`` logs and drops
failures, and ``migrate_legacy`` swallows everything, so the primary store
stays usable whether or not the legacy store exists.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from kubeagentix_client.session.models import StoredConversation
from kubeagentix_client.storage.interface import KVStore, StoreUnavailableError

logger = logging.getLogger(__name__)

PRIMARY_STORE_NAME = "kubeagentix"
LEGACY_STORE_NAME = "kubeagentics"


def plan_legacy_writes(
    entries: Iterable[tuple[str, dict[str, Any]]],
    existing_keys: Iterable[str] = (),
) -> list[tuple[str, dict[str, Any]]]:
    """Decide which legacy records to copy.

    Keys already in the primary store win (they are at least as new), and a
    key seen twice in *entries* is copied once.
    """
    skip = set(existing_keys)
    writes: list[tuple[str, dict[str, Any]]] = []
    for key, value in entries:
        if not key or key in skip:
            continue
        skip.add(key)
        writes.append((key, value))
    return writes


class ConversationStore:
    def __init__(self, primary: KVStore, legacy: KVStore | None = None) -> None:
        self._primary = primary
        self._legacy = legacy
        self._migrated = False
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    async def start(self) -> None:
        """Open the primary store. A failure leaves the store disabled, never raised."""
        try:
            await self._primary.start()
        except Exception as exc:
            self._available = False
            logger.warning(
                "Conversation store %r unavailable, persistence disabled: %s",
                getattr(self._primary, "name", "?"), exc,
            )
            return
        self._available = True

    async def stop(self) -> None:
        if self._available:
            await self._primary.stop()

    async def save(self, conversation: StoredConversation) -> bool:
        """Upsert under ``conversation.id`` (last write wins). Never raises."""
        if not self._available:
            logger.warning("Conversation store unavailable, not saving %s", conversation.id)
            return False
        try:
            await self._primary.put(
                conversation.id,
                conversation.model_dump(mode="json", by_alias=True),
            )
        except Exception as exc:
            logger.warning("Failed to save conversation %s: %s", conversation.id, exc)
            return False
        logger.debug("Saved conversation %s (%d messages)", conversation.id, len(conversation.messages))
        return True

    async def get(self, conversation_id: str) -> StoredConversation | None:
        """The stored record, or ``None`` when it is missing or unreadable."""
        if not self._available:
            return None
        try:
            raw = await self._primary.get(conversation_id)
            if raw is None:
                return None
            return StoredConversation.model_validate(raw)
        except StoreUnavailableError as exc:
            logger.warning("Cannot read conversation %s: %s", conversation_id, exc)
        except ValueError as exc:
            # ValidationError and JSONDecodeError are both ValueErrors
            logger.warning("Conversation %s is unreadable: %s", conversation_id, exc)
        return None

    async def list_conversations(self) -> list[StoredConversation]:
        """Every readable record, most recently updated first."""
        if not self._available:
            return []
        try:
            rows = await self._primary.get_all()
        except StoreUnavailableError as exc:
            logger.warning("Cannot list conversations: %s", exc)
            return []

        conversations: list[StoredConversation] = []
        for key, raw in rows:
            try:
                conversations.append(StoredConversation.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping unreadable conversation %s: %s", key, exc.error_count())
        conversations.sort(key=lambda c: c.last_updated_at, reverse=True)
        return conversations

    async def migrate_legacy(self) -> int:
        """Copy records from the legacy store once. Returns how many were written."""
        if self._migrated or self._legacy is None or not self._available:
            return 0
        self._migrated = True

        written = 0
        try:
            await self._legacy.start()
            try:
                entries = await self._legacy.get_all()
            finally:
                await self._legacy.stop()

            existing = [key for key, _ in await self._primary.get_all()]
            for key, value in plan_legacy_writes(entries, existing):
                try:
                    StoredConversation.model_validate(value)
                except ValidationError:
                    logger.warning("Legacy record %s is not a conversation, skipping", key)
                    continue
                await self._primary.put(key, value)
                written += 1
        except Exception as exc:
            logger.warning(
                "Legacy migration from %r stopped after %d record(s): %s",
                getattr(self._legacy, "name", "?"), written, exc,
            )
            return written

        if written:
            logger.info("Migrated %d conversation(s) from legacy store %r", written, self._legacy.name)
        return written
