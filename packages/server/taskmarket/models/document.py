"""Document model: one JSON document per (collection, doc_id)."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Document(TimestampMixin, SQLModel, table=True):
    __tablename__ = "documents"
    __table_args__ = (
        sa.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )

    # Commit order; breaks ties between equal timestamps
    seq: Optional[int] = Field(default=None, primary_key=True)
    collection: str = Field(nullable=False, index=True)
    doc_id: str = Field(nullable=False, index=True)
    data: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
