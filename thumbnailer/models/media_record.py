from __future__ import annotations

from sqlalchemy import Column, Float, Index, Integer, Text

from . import RecordsBase


class MediaRecordRow(RecordsBase):
    __tablename__ = "media_records"

    id = Column(Text, primary_key=True)
    owner_id = Column(Text, nullable=False)
    source_url = Column(Text)  # null until the upload pipeline finalizes
    duration_seconds = Column(Float)
    poster_url = Column(Text)
    updated_at = Column(Integer, nullable=False)  # epoch milliseconds

    __table_args__ = (Index("idx_media_records_owner", "owner_id"),)
