"""Database base class.

Model modules register themselves on ``Base.metadata`` when imported; import
``app.models`` before calling ``create_all`` or running migrations.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass
