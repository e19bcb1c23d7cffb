"""
User data persistence.

Values written through an allowed mutation are appended to the user_data
table; reads return the newest value per field.
"""

import logging
import time
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from frontdoor.errors import FrontDoorError
from frontdoor.models.user_data import UserData

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class UserDataStoreError(FrontDoorError):
    """The user data table could not be read or written."""


class UserDataStore:
    """Reads and writes per-user field values for a tenant."""

    def __init__(self, session_factory: sessionmaker, clock_ms: Callable[[], int] = _now_ms):
        self._session_factory = session_factory
        self._clock_ms = clock_ms

    def set_value(self, tenant_id: str, user_id: str, field: str, value: str) -> None:
        session = self._session_factory()
        try:
            session.add(UserData(
                tenant_id=tenant_id,
                user_id=user_id,
                field=field,
                value=value if value is not None else "",
                updated_at=self._clock_ms(),
            ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to write user data", extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "field": field,
                "error": str(e),
            })
            raise UserDataStoreError(f"failed to write field {field} for user {user_id}")
        finally:
            session.close()

        logger.info("User data written", extra={
            "tenant_id": tenant_id,
            "user_id": user_id,
            "field": field,
        })

    def get_value(self, tenant_id: str, user_id: str, field: str) -> Optional[str]:
        """Latest value of one field, or None if it was never written."""
        session = self._session_factory()
        try:
            row = (
                session.query(UserData.value)
                .filter(
                    UserData.tenant_id == tenant_id,
                    UserData.user_id == user_id,
                    UserData.field == field,
                )
                .order_by(UserData.updated_at.desc(), UserData.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            logger.error("Failed to read user data", extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "field": field,
                "error": str(e),
            })
            raise UserDataStoreError(f"failed to read field {field} for user {user_id}")
        finally:
            session.close()
        return row[0] if row else None

    def query_fields(self, tenant_id: str, user_id: str, like_pattern: str) -> Dict[str, str]:
        """
        Latest value of every field whose name matches a SQL LIKE pattern.

        `%` matches any run of characters and `_` any single character.
        """
        session = self._session_factory()
        try:
            rows = (
                session.query(UserData.field, UserData.value)
                .filter(
                    UserData.tenant_id == tenant_id,
                    UserData.user_id == user_id,
                    UserData.field.like(like_pattern),
                )
                .order_by(UserData.field, UserData.updated_at.desc(), UserData.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Failed to query user data", extra={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "pattern": like_pattern,
                "error": str(e),
            })
            raise UserDataStoreError(f"failed to query fields for user {user_id}")
        finally:
            session.close()

        values: Dict[str, str] = {}
        for field, value in rows:
            values.setdefault(field, value)
        return values
