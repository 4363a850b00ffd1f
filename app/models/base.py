from typing import Annotated, Any, Dict, Type, TypeVar
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId

# Helper to handle ObjectId as string
PyObjectId = Annotated[str, BeforeValidator(str)]

T = TypeVar("T", bound="MongoModel")

class CamelModel(BaseModel):
    """
    Embedded documents: snake_case in Python, camelCase on the wire and in MongoDB.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
    )

class MongoModel(CamelModel):
    """
    Base model for MongoDB documents with _id handling and serialization helpers.
    The document id is exposed as ``id`` in API payloads and stored as ``_id``.
    """
    id: PyObjectId | None = Field(default=None)

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
        json_encoders={
            ObjectId: str
        }
    )

    @classmethod
    def from_mongo(cls: Type[T], data: Dict[str, Any]) -> T:
        """Convert MongoDB document to Pydantic model."""
        if not data:
            return None
        data = dict(data)
        id = data.pop("_id", None)
        return cls(id=id, **data)

    def to_mongo(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Convert Pydantic model to MongoDB document."""
        data = self.model_dump(by_alias=True, exclude_none=exclude_none)
        id = data.pop("id", None)
        if id is not None:
            data["_id"] = ObjectId(id)
        return data
