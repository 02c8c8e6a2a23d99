from __future__ import annotations

from typing import Any, Dict, List

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where repositories should obtain collections.
    """

    return db[name]


def id_candidates(value: Any) -> List[Any]:
    """Reference ids are stored either as ObjectId or as their hex string."""
    text = str(value)
    out: List[Any] = [text]
    if ObjectId.is_valid(text):
        out.insert(0, ObjectId(text))
    return out


def ref_filter(**refs: Any) -> Dict[str, Any]:
    """Build a filter matching each reference field by ObjectId or str."""
    return {field: {"$in": id_candidates(value)} for field, value in refs.items()}
