import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, String, Uuid, orm
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import mapped_column
from sqlalchemy.types import TypeDecorator

from typing_extensions import Annotated

str64 = Annotated[str, 64]
str512 = Annotated[str, 512]
uuidpk = Annotated[uuid.UUID, mapped_column(Uuid, primary_key=True, default=uuid.uuid4)]

# Opaque structured documents. JSONB on PostgreSQL, plain JSON elsewhere.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp stored as UTC.

    Naive datetimes are rejected on the way in. Values read back are always aware UTC
    datetimes, including on SQLite which does not keep the offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: Optional[datetime], dialect
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("naive datetime values are not accepted")
        return value.astimezone(timezone.utc)

    def process_result_value(
        self, value: Optional[datetime], dialect
    ) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str64: String(64),
        str512: String(512),
        datetime: UTCDateTime,
    }
