"""Account persistence on top of a SQLAlchemy session."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import USER_SEQUENCE, Sequence, User
from services.exceptions import DuplicateAccountError, RepositoryError


logger = logging.getLogger(__name__)


def format_user_id(number: int) -> str:
    return f"USER{number:04d}"


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            return self.db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._fail("lookup by email", e)

    def find_by_user_id(self, user_id: str) -> Optional[User]:
        try:
            return self.db.execute(select(User).where(User.user_id == user_id)).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._fail("lookup by user id", e)

    def next_sequence_value(self, name: str) -> int:
        """Advance the named counter and return its new value.

        The UPDATE takes a write lock on the counter row, so the value read
        back belongs to this transaction alone.
        """
        result = self.db.execute(
            update(Sequence).where(Sequence.name == name).values(value=Sequence.value + 1)
        )
        if result.rowcount == 0:
            # Only for tables created before counters were seeded on create.
            self.db.add(Sequence(name=name, value=1))
            self.db.flush()
            return 1
        return self.db.execute(select(Sequence.value).where(Sequence.name == name)).scalar_one()

    def insert(self, user: User) -> User:
        """Persist a new account, assigning its public identifier."""
        try:
            user.user_id = format_user_id(self.next_sequence_value(USER_SEQUENCE))
            self.db.add(user)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if self.find_by_email(user.email) is not None:
                logger.info("Insert of %s lost a race on the email", user.email)
                raise DuplicateAccountError() from e
            self._fail("insert", e)
        except SQLAlchemyError as e:
            self._fail("insert", e)
        self.db.refresh(user)
        logger.info("Created account %s for %s", user.user_id, user.email)
        return user

    def update(self, user: User) -> User:
        try:
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as e:
            self._fail("update", e)
        return user

    def delete(self, user: User) -> None:
        user_id, email = user.user_id, user.email
        try:
            self.db.delete(user)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("delete", e)
        logger.info("Deleted account %s (%s)", user_id, email)

    def _fail(self, action: str, exc: SQLAlchemyError):
        self.db.rollback()
        logger.error("Account %s failed: %s", action, exc)
        raise RepositoryError() from exc
