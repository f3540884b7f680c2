"""
Owner-scoped transaction CRUD.

Every query sent to the collection carries ``user_id``, so a caller can
neither see nor change another user's transactions.
"""
import logging
import math
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection

from aggregation import date_range_match
from database import to_utc, utcnow
from errors import NotFoundError, ValidationError, from_pydantic
from schemas import (
    EDITABLE_TRANSACTION_FIELDS,
    TransactionCategory,
    TransactionCreate,
    TransactionOut,
    TransactionPage,
    TransactionType,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
RECENT_COUNT = 5

_NEWEST_FIRST = [("date", DESCENDING), ("_id", DESCENDING)]


def _object_id(tx_id) -> ObjectId:
    if isinstance(tx_id, ObjectId):
        return tx_id
    if not ObjectId.is_valid(tx_id):
        raise NotFoundError()
    return ObjectId(tx_id)


def _owner_filter(owner_id: ObjectId, category: Optional[str] = None, tx_type: Optional[str] = None) -> dict:
    query: dict = {"user_id": owner_id}
    if category:
        try:
            query["category"] = TransactionCategory(category).value
        except ValueError:
            raise ValidationError(f"Unknown category: {category}")
    if tx_type:
        try:
            query["type"] = TransactionType(tx_type).value
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {tx_type}")
    return query


def list_transactions(
    collection: Collection,
    owner_id: ObjectId,
    category: Optional[str] = None,
    tx_type: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
) -> TransactionPage:
    """Return one page of the owner's transactions, newest first.

    Out-of-range ``page`` or ``limit`` values are rejected rather than
    clamped. A page past the end is empty but still reports the real total.
    ``start`` and ``end`` bound ``date`` inclusively and may be given alone.
    """
    if page < 1:
        raise ValidationError("page must be a positive integer")
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")

    query = _owner_filter(owner_id, category, tx_type)
    date_query = date_range_match(start, end)
    if date_query:
        query["date"] = date_query
    cursor = collection.find(query).sort(_NEWEST_FIRST).skip((page - 1) * limit).limit(limit)
    docs = [TransactionOut.from_document(doc) for doc in cursor]
    total = collection.count_documents(query)

    return TransactionPage(
        transactions=docs,
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
        limit=limit,
    )


def recent_transactions(collection: Collection, owner_id: ObjectId) -> List[TransactionOut]:
    cursor = collection.find({"user_id": owner_id}).sort(_NEWEST_FIRST).limit(RECENT_COUNT)
    return [TransactionOut.from_document(doc) for doc in cursor]


def get_transaction(collection: Collection, owner_id: ObjectId, tx_id) -> TransactionOut:
    doc = collection.find_one({"_id": _object_id(tx_id), "user_id": owner_id})
    if doc is None:
        raise NotFoundError()
    return TransactionOut.from_document(doc)


def create_transaction(collection: Collection, owner_id: ObjectId, fields) -> TransactionOut:
    if isinstance(fields, TransactionCreate):
        tx = fields
    else:
        try:
            tx = TransactionCreate.model_validate(fields)
        except PydanticValidationError as exc:
            raise from_pydantic(exc)

    now = utcnow()
    data = tx.model_dump()
    data["date"] = to_utc(data.get("date")) or now
    data["user_id"] = owner_id
    data["created_at"] = now
    data["updated_at"] = now

    inserted_id = collection.insert_one(data).inserted_id
    data["_id"] = inserted_id
    logger.info("Created transaction %s for user %s", inserted_id, owner_id)
    return TransactionOut.from_document(data)


def update_transaction(collection: Collection, owner_id: ObjectId, tx_id, fields) -> TransactionOut:
    """Apply the supplied editable fields to one of the owner's transactions."""
    oid = _object_id(tx_id)

    if isinstance(fields, TransactionUpdate):
        changes = fields.model_dump(exclude_unset=True)
    else:
        editable = {k: v for k, v in dict(fields or {}).items() if k in EDITABLE_TRANSACTION_FIELDS}
        try:
            changes = TransactionUpdate.model_validate(editable).model_dump(exclude_unset=True)
        except PydanticValidationError as exc:
            raise from_pydantic(exc)

    nulls = sorted(name for name, value in changes.items() if value is None)
    if nulls:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulls)}")
    if not changes:
        raise ValidationError("No editable fields supplied")

    if "date" in changes:
        changes["date"] = to_utc(changes["date"])
    changes["updated_at"] = utcnow()

    doc = collection.find_one_and_update(
        {"_id": oid, "user_id": owner_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        logger.info("Update of transaction %s by user %s matched nothing", oid, owner_id)
        raise NotFoundError()

    logger.info("Updated transaction %s for user %s", oid, owner_id)
    return TransactionOut.from_document(doc)


def delete_transaction(collection: Collection, owner_id: ObjectId, tx_id) -> None:
    oid = _object_id(tx_id)
    result = collection.delete_one({"_id": oid, "user_id": owner_id})
    if result.deleted_count == 0:
        logger.info("Delete of transaction %s by user %s matched nothing", oid, owner_id)
        raise NotFoundError()
    logger.info("Deleted transaction %s for user %s", oid, owner_id)
