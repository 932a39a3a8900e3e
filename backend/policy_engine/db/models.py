"""ORM records backing the SQL policy store."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from policy_engine.db.base import Base, BaseModel

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class PolicyRecord(BaseModel):
    """
    One stored policy version.

    Rules are kept as a JSON document (the camelCase form produced by
    ``PolicyRule.to_dict``); they are always read and written together with
    their policy, so they do not get tables of their own.
    """

    __tablename__ = "policies"
    __table_args__ = (
        UniqueConstraint("policy_code", "version_number", name="uq_policies_code_version"),
        Index("ix_policies_category_status", "category", "status"),
        Index("ix_policies_loan_type_status", "loan_type", "status"),
    )

    policy_code: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    loan_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Versioning
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    previous_version_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    rules: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    # Effective window (open bounds are NULL)
    effective_from: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    tags: Mapped[list[str]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Audit
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Optimistic concurrency token, compared on every write
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<PolicyRecord(id={self.id}, code={self.policy_code!r}, "
            f"v{self.version_number}, status={self.status})>"
        )


class PolicyCodeSequence(Base):
    """Per-year counter used to allocate policy codes."""

    __tablename__ = "policy_code_sequences"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<PolicyCodeSequence(year={self.year}, value={self.value})>"
