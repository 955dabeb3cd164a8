from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..errors import DuplicateTransaction
from ..models.base import DBSerializableModel
from ..models.ledger import LedgerEntry
from ..models.payment import PaymentAttempt
from ..models.transaction import TransactionRecord
from ..models.user import NO_SUBSCRIPTION, SubscriberAccount
from .base import BaseDBManager


TModel = TypeVar("TModel", bound=DBSerializableModel)


class MongoDBManager(BaseDBManager):
    """
    MongoDB implementation of BaseDBManager using motor (async driver).

    One document per user in `vip_users`; pending payment and transaction
    history are embedded. Single-document updates are atomic in MongoDB,
    so each conditional transition is one `update_one` whose filter carries
    the precondition. Global hash uniqueness is enforced by a unique
    multikey index on `transactions.hash`.
    """

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._db = database
        self._users = database[SubscriberAccount.collection_name]

    @classmethod
    def from_client_uri(cls, uri: str, db_name: str, timeout_ms: int = 10000) -> "MongoDBManager":
        client = AsyncIOMotorClient(uri, serverSelectionTimeoutMS=timeout_ms)
        return cls(client[db_name])

    async def ensure_indexes(self) -> None:
        for model in (SubscriberAccount, LedgerEntry):
            col = self._db[model.collection_name]
            for keys, options in model.indexes:
                await col.create_index(keys, **options)

    # Helper utilities
    @staticmethod
    def _prepare_insert(model: TModel) -> Dict[str, Any]:
        data = model.serialize_for_db()
        model_id = getattr(model, "id", None)
        if not model_id:
            model_id = uuid4().hex
            setattr(model, "id", model_id)
            data["id"] = model_id
        data["_id"] = model_id
        return data

    @staticmethod
    def _decode(model_cls: Type[TModel], doc: Optional[Mapping[str, Any]]) -> Optional[TModel]:
        if doc is None:
            return None
        data = dict(doc)
        data.pop("_id", None)
        return model_cls.model_validate(data)

    async def _guarded_update(self, query: Dict[str, Any], update: Dict[str, Any], tx_hash: str) -> bool:
        try:
            result = await self._users.update_one(query, update)
        except DuplicateKeyError as exc:
            raise DuplicateTransaction(
                "transaction hash already recorded", detail={"tx_hash": tx_hash}
            ) from exc
        return result.modified_count == 1

    # User operations
    async def get_user(self, user_id: int) -> Optional[SubscriberAccount]:
        doc = await self._users.find_one({"user_id": user_id})
        return self._decode(SubscriberAccount, doc)

    async def upsert_user(
        self, user_id: int, fields: Mapping[str, Any]
    ) -> SubscriberAccount:
        defaults = SubscriberAccount(user_id=user_id).serialize_for_db()
        on_insert = {k: v for k, v in defaults.items() if k not in fields and k != "user_id"}
        doc = await self._users.find_one_and_update(
            {"user_id": user_id},
            {"$set": dict(fields), "$setOnInsert": on_insert},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._decode(SubscriberAccount, doc)  # type: ignore[return-value]

    async def set_pending_payment(
        self, user_id: int, attempt: PaymentAttempt
    ) -> None:
        defaults = SubscriberAccount(user_id=user_id).serialize_for_db()
        defaults.pop("pending_payment", None)
        defaults.pop("user_id", None)
        await self._users.update_one(
            {"user_id": user_id},
            {
                "$set": {"pending_payment": attempt.model_dump(mode="python")},
                "$setOnInsert": defaults,
            },
            upsert=True,
        )

    async def set_in_channel(self, user_id: int, in_channel: bool) -> None:
        await self._users.update_one(
            {"user_id": user_id}, {"$set": {"in_channel": in_channel}}
        )

    # Transaction queries
    async def find_user_by_transaction_hash(
        self, tx_hash: str
    ) -> Optional[SubscriberAccount]:
        doc = await self._users.find_one({"transactions.hash": tx_hash})
        return self._decode(SubscriberAccount, doc)

    # Subscription transitions
    async def conditional_activate(
        self,
        user_id: int,
        expected_payment_id: str,
        expected_expires_at: Optional[datetime],
        record: TransactionRecord,
        subscription: str,
        expires_at: datetime,
    ) -> bool:
        query = {
            "user_id": user_id,
            "pending_payment.payment_id": expected_payment_id,
            # null also matches a missing field, i.e. a first activation
            "expires_at": expected_expires_at,
            "transactions.hash": {"$ne": record.hash},
        }
        update = {
            "$set": {"subscription": subscription, "expires_at": expires_at},
            "$unset": {"pending_payment": ""},
            "$push": {"transactions": record.model_dump(mode="python")},
        }
        return await self._guarded_update(query, update, record.hash)

    async def conditional_record(
        self,
        user_id: int,
        expected_payment_id: str,
        record: TransactionRecord,
    ) -> bool:
        query = {
            "user_id": user_id,
            "pending_payment.payment_id": expected_payment_id,
            "transactions.hash": {"$ne": record.hash},
        }
        update = {
            "$unset": {"pending_payment": ""},
            "$push": {"transactions": record.model_dump(mode="python")},
        }
        return await self._guarded_update(query, update, record.hash)

    async def find_expired_active(self, now: datetime) -> Sequence[SubscriberAccount]:
        cursor = self._users.find(
            {"subscription": {"$ne": NO_SUBSCRIPTION}, "expires_at": {"$lt": now}}
        )
        docs = await cursor.to_list(length=None)
        return [
            self._decode(SubscriberAccount, d)
            for d in docs
            if d is not None
        ]  # type: ignore[misc]

    async def expire_subscription(self, user_id: int, now: datetime) -> bool:
        result = await self._users.update_one(
            {
                "user_id": user_id,
                "subscription": {"$ne": NO_SUBSCRIPTION},
                "expires_at": {"$lt": now},
            },
            {"$set": {"subscription": NO_SUBSCRIPTION}},
        )
        return result.modified_count == 1

    # Ledger
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        col = self._db[LedgerEntry.collection_name]
        data = self._prepare_insert(entry)
        await col.insert_one(data)
        return entry
