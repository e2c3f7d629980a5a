"""In-memory stand-in for the slice of the Motor API the DB services use."""
import copy
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

_MISSING = object()


class InsertOneResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class UpdateResult:
    def __init__(self, matched_count: int, upserted_id=None):
        self.matched_count = matched_count
        self.modified_count = matched_count
        self.upserted_id = upserted_id


class DeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


def _compare(value, op: str, operand) -> bool:
    if op == "$in":
        return value in operand
    if op == "$ne":
        return (None if value is _MISSING else value) != operand
    if value is _MISSING or value is None:
        return False
    if op == "$lt":
        return value < operand
    if op == "$lte":
        return value <= operand
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    raise NotImplementedError(f"Unsupported query operator {op}")


def matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        value = doc.get(key, _MISSING)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif condition is None:
            if value is not _MISSING and value is not None:
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1):
        self._docs.sort(key=lambda doc: doc.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length: Optional[int] = None):
        return self._docs if length is None else self._docs[:length]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.indexes: List[Dict[str, Any]] = []

    def _find(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [doc for doc in self.docs if matches(doc, query)]

    def _apply(self, doc: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
        for op, fields in update.items():
            if op == "$set" or (op == "$setOnInsert" and inserting):
                doc.update(copy.deepcopy(fields))
            elif op != "$setOnInsert":
                raise NotImplementedError(f"Unsupported update operator {op}")

    def _upsert(self, query: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        doc = {
            key: value for key, value in query.items()
            if not key.startswith("$") and not isinstance(value, dict)
        }
        doc.setdefault("_id", ObjectId())
        self._apply(doc, update, inserting=True)
        self.docs.append(doc)
        return doc

    async def create_index(self, keys, **kwargs):
        self.indexes.append({"keys": keys, **kwargs})
        return "_".join(f"{key}_{direction}" for key, direction in keys)

    def find(self, query: Optional[Dict[str, Any]] = None) -> FakeCursor:
        return FakeCursor([copy.deepcopy(doc) for doc in self._find(query or {})])

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        found = self._find(query)
        return copy.deepcopy(found[0]) if found else None

    async def insert_one(self, doc: Dict[str, Any]) -> InsertOneResult:
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self.docs.append(stored)
        return InsertOneResult(stored["_id"])

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False) -> UpdateResult:
        found = self._find(query)
        if found:
            self._apply(found[0], update, inserting=False)
            return UpdateResult(1)
        if upsert:
            return UpdateResult(0, upserted_id=self._upsert(query, update)["_id"])
        return UpdateResult(0)

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_document=ReturnDocument.BEFORE
    ) -> Optional[Dict[str, Any]]:
        found = self._find(query)
        if found:
            before = copy.deepcopy(found[0])
            self._apply(found[0], update, inserting=False)
            return copy.deepcopy(found[0]) if return_document == ReturnDocument.AFTER else before
        if upsert:
            doc = self._upsert(query, update)
            return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else None
        return None

    async def delete_one(self, query: Dict[str, Any]) -> DeleteResult:
        found = self._find(query)
        if found:
            self.docs.remove(found[0])
            return DeleteResult(1)
        return DeleteResult(0)

    async def delete_many(self, query: Dict[str, Any]) -> DeleteResult:
        found = self._find(query)
        for doc in found:
            self.docs.remove(doc)
        return DeleteResult(len(found))


class FakeDatabase:
    def __init__(self):
        self._collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]
