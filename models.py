from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, event

from database import Base


USER_SEQUENCE = "user"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    # Public identifier, e.g. "USER0007". Assigned from the "user" sequence.
    user_id = Column(String, unique=True, index=True, nullable=False)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)

    # Unique and compared exactly as stored.
    email = Column(String, unique=True, index=True, nullable=False)
    mobile = Column(String, nullable=False)

    # Store password hash (bcrypt). Never store plaintext.
    password_hash = Column(String, nullable=False)

    dob = Column(Date, nullable=True)
    gender = Column(String, nullable=True)

    # Flipped once by email verification; never reset.
    is_verified = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Sequence(Base):
    """Named monotonically increasing counters."""

    __tablename__ = "sequences"

    name = Column(String, primary_key=True)
    value = Column(Integer, default=0, nullable=False)


@event.listens_for(Sequence.__table__, "after_create")
def _seed_sequences(target, connection, **kw):
    # Counters exist from the start so allocation is always a plain UPDATE.
    connection.execute(target.insert().values(name=USER_SEQUENCE, value=0))
