"""
User data model.

Append-only history of per-user field values. The newest row for a
(tenant_id, user_id, field) triple is the current value.
"""

from sqlalchemy import BigInteger, Column, Index, Integer, String, Text

from frontdoor.db_base import Base


class UserData(Base):
    """One written value of a user data field."""

    __tablename__ = "user_data"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Write sequence; breaks ties between writes in the same millisecond"
    )

    tenant_id = Column(
        String(255),
        nullable=False,
        comment="Tenant application id"
    )

    user_id = Column(
        String(255),
        nullable=False,
        comment="Identity provider user id"
    )

    field = Column(
        String(255),
        nullable=False,
        comment="Field name"
    )

    value = Column(
        Text,
        nullable=False,
        default="",
        comment="Field value"
    )

    updated_at = Column(
        BigInteger,
        nullable=False,
        comment="Write time in milliseconds since the epoch"
    )

    __table_args__ = (
        Index("ix_user_data_lookup", "tenant_id", "user_id", "field", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<UserData(tenant_id={self.tenant_id}, user_id={self.user_id}, field={self.field})>"
