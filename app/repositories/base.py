from enum import Enum
from typing import Generic, TypeVar, Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from app.models.base import MongoModel

T = TypeVar("T", bound=MongoModel)

def to_object_id(id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        return None

def to_mongo_value(value: Any) -> Any:
    """Serialize a Python value for a partial $set update."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [to_mongo_value(v) for v in value]
    return value

class BaseRepository(Generic[T]):
    def __init__(self, collection: AsyncIOMotorCollection, model_cls: type[T]):
        self.collection = collection
        self.model_cls = model_cls

    def to_mongo_fields(self, update_data: Dict[str, Any]) -> Dict[str, Any]:
        """Map snake_case model field names to their stored (camelCase) names."""
        fields = {}
        for name, value in update_data.items():
            info = self.model_cls.model_fields.get(name)
            key = info.alias if info and info.alias else name
            fields[key] = to_mongo_value(value)
        return fields

    async def get(self, id: str, session: AsyncIOMotorClientSession = None) -> Optional[T]:
        """Get a document by ID."""
        oid = to_object_id(id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid}, session=session)
        return self.model_cls.from_mongo(doc) if doc else None

    async def get_by_field(self, field: str, value: Any) -> Optional[T]:
        """Get a document by a specific field."""
        doc = await self.collection.find_one({field: value})
        return self.model_cls.from_mongo(doc) if doc else None

    async def list(self, filter: Dict[str, Any] = {}, skip: int = 0, limit: int = 100,
                   sort: Optional[List[tuple]] = None) -> List[T]:
        """List documents with optional filter, sort and pagination. limit=0 means no limit."""
        cursor = self.collection.find(filter)
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit or None)
        return [self.model_cls.from_mongo(doc) for doc in docs]

    async def create(self, model: T, session: AsyncIOMotorClientSession = None) -> T:
        """Create a new document."""
        data = model.to_mongo()
        result = await self.collection.insert_one(data, session=session)
        model.id = str(result.inserted_id)
        return model

    async def update(self, id: str, update_data: Dict[str, Any]) -> Optional[T]:
        """Unconditional partial update by ID, for fields outside the workflow."""
        await self.collection.update_one(
            {"_id": ObjectId(id)},
            {"$set": self.to_mongo_fields(update_data)}
        )
        return await self.get(id)
