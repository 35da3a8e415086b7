# models/base.py
from datetime import datetime, timezone
from typing import Annotated, Optional
import uuid

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(uuid.uuid4())

class MongoDBModel(BaseModel):
    """Base for documents stored with a string uuid as ``_id``."""
    id: str = Field(default_factory=new_id, alias="_id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


def from_document(document: Optional[dict]) -> Optional[dict]:
    """Expose Mongo's ``_id`` as ``id``."""
    if not document:
        return document
    document = dict(document)
    if "_id" in document:
        document["id"] = document.pop("_id")
    return document


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC, the way ``datetime.utcnow()`` returns them."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

UTCDatetime = Annotated[datetime, AfterValidator(naive_utc)]
