"""Property model: the rental properties ledger entries are booked against.

Property management lives elsewhere; bank ingestion only needs to know
whether a candidate property id exists.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from bankfeed.models.base import BaseModel


class Property(BaseModel):
    """A rental property."""

    __tablename__ = "properties"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name})>"
