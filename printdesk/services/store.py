"""
printdesk/services/store.py

Purpose: Conversation store

- Maps a Messenger user id to its conversation record
- Creates records on first contact (initial menu state)
- Persists state transitions with an optimistic expected-state check
- MongoDB backend for production, in-process backend for development/tests
"""

import asyncio
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from printdesk.core.exceptions import RecordExists, StoreUnavailable
from printdesk.core.logging import get_logger
from printdesk.models.user import UserRecord

logger = get_logger(__name__)

# Entries kept in each record's state_history
STATE_HISTORY_LIMIT = 50


class WriteStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class StateWrite:
    """
    Outcome of update_state.

    `state` is the new state on OK and the state found in the store on
    CONFLICT.
    """
    status: WriteStatus
    state: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == WriteStatus.OK


class ConversationStore(ABC):
    """
    Durable mapping external_id -> UserRecord.
    """

    def __init__(self, initial_state: str):
        self.initial_state = initial_state

    @abstractmethod
    async def find(self, external_id: str) -> Optional[UserRecord]:
        """
        Returns the record, or None for a user never seen before.

        Raises:
            StoreUnavailable: If the backend cannot be reached
        """

    @abstractmethod
    async def create(self, external_id: str, display_name: str) -> UserRecord:
        """
        Inserts a record in the initial state.

        Raises:
            RecordExists: If the user was created concurrently
            StoreUnavailable: If the backend cannot be reached
        """

    @abstractmethod
    async def update_state(
        self,
        external_id: str,
        new_state: str,
        expected_state: str
    ) -> StateWrite:
        """
        Moves the user to `new_state` if the stored state still equals
        `expected_state`.
        """


class MongoConversationStore(ConversationStore):
    """
    Conversation store backed by the MongoDB users collection.
    """

    def __init__(self, collection: AsyncIOMotorCollection, initial_state: str):
        super().__init__(initial_state)
        self.collection = collection

    async def find(self, external_id: str) -> Optional[UserRecord]:
        try:
            document = await self.collection.find_one({"external_id": external_id})
        except ConnectionFailure as e:
            logger.error(f"MongoDB unreachable while reading {external_id}: {e}")
            raise StoreUnavailable(details={"operation": "find"}) from e

        if document is None:
            return None
        return UserRecord.from_document(document)

    async def create(self, external_id: str, display_name: str) -> UserRecord:
        record = UserRecord(
            external_id=external_id,
            display_name=display_name,
            state_label=self.initial_state,
        )

        try:
            await self.collection.insert_one(record.to_document())
        except DuplicateKeyError as e:
            logger.warning(f"User {external_id} was created concurrently")
            raise RecordExists(details={"external_id": external_id}) from e
        except ConnectionFailure as e:
            logger.error(f"MongoDB unreachable while creating {external_id}: {e}")
            raise StoreUnavailable(details={"operation": "create"}) from e

        logger.info(f"New user created in state '{self.initial_state}'")
        return record

    async def update_state(
        self,
        external_id: str,
        new_state: str,
        expected_state: str
    ) -> StateWrite:
        now = datetime.utcnow()

        try:
            result = await self.collection.update_one(
                {"external_id": external_id, "state_label": expected_state},
                {
                    "$set": {
                        "state_label": new_state,
                        "updated_at": now
                    },
                    "$push": {
                        "state_history": {
                            "$each": [{
                                "from": expected_state,
                                "to": new_state,
                                "timestamp": now
                            }],
                            "$slice": -STATE_HISTORY_LIMIT
                        }
                    }
                }
            )

            if result.matched_count > 0:
                logger.info(f"State updated: {expected_state} -> {new_state}")
                return StateWrite(WriteStatus.OK, state=new_state)

            # Nothing matched: either the state moved on or the record is gone
            current = await self.collection.find_one(
                {"external_id": external_id},
                {"state_label": 1}
            )

        except ConnectionFailure as e:
            logger.error(f"MongoDB unreachable while updating {external_id}: {e}")
            return StateWrite(WriteStatus.UNAVAILABLE, detail=str(e))

        if current is None:
            logger.warning(f"State update matched no record for {external_id}")
            return StateWrite(WriteStatus.NOT_FOUND)

        logger.warning(
            f"State conflict: expected '{expected_state}', "
            f"found '{current.get('state_label')}'"
        )
        return StateWrite(WriteStatus.CONFLICT, state=current.get("state_label"))


class InMemoryConversationStore(ConversationStore):
    """
    Process-local store. Writes are serialized per user with an asyncio.Lock;
    a lock lives only while some coroutine holds a reference to it.
    """

    def __init__(self, initial_state: str):
        super().__init__(initial_state)
        self._records: Dict[str, UserRecord] = {}
        self._history: Dict[str, List[dict]] = {}
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, external_id: str) -> asyncio.Lock:
        lock = self._locks.get(external_id)
        if lock is None:
            lock = self._locks[external_id] = asyncio.Lock()
        return lock

    async def find(self, external_id: str) -> Optional[UserRecord]:
        return self._records.get(external_id)

    async def create(self, external_id: str, display_name: str) -> UserRecord:
        async with self._lock_for(external_id):
            if external_id in self._records:
                raise RecordExists(details={"external_id": external_id})

            record = UserRecord(
                external_id=external_id,
                display_name=display_name,
                state_label=self.initial_state,
            )
            self._records[external_id] = record
            self._history[external_id] = []

        logger.info(f"New user created in state '{self.initial_state}'")
        return record

    async def update_state(
        self,
        external_id: str,
        new_state: str,
        expected_state: str
    ) -> StateWrite:
        async with self._lock_for(external_id):
            record = self._records.get(external_id)
            if record is None:
                return StateWrite(WriteStatus.NOT_FOUND)

            if record.state_label != expected_state:
                logger.warning(
                    f"State conflict: expected '{expected_state}', "
                    f"found '{record.state_label}'"
                )
                return StateWrite(WriteStatus.CONFLICT, state=record.state_label)

            now = datetime.utcnow()
            self._records[external_id] = record.model_copy(
                update={"state_label": new_state, "updated_at": now}
            )
            history = self._history[external_id]
            history.append({"from": expected_state, "to": new_state, "timestamp": now})
            del history[:-STATE_HISTORY_LIMIT]

        logger.info(f"State updated: {expected_state} -> {new_state}")
        return StateWrite(WriteStatus.OK, state=new_state)

    def history(self, external_id: str) -> List[dict]:
        return list(self._history.get(external_id, []))
