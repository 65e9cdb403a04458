from typing import Any, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.base import Base, TimestampMixin


class StoredValue(TimestampMixin, Base):
    """Durable key/value entry for session tokens, profiles and the cart."""

    key: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<StoredValue(key={self.key!r})>"
