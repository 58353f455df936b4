# attendance_engine/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models in the attendance engine.

    Models are registered on `Base.metadata` by `attendance_engine.db.session`,
    which imports every model module.
    """
    pass
