"""
Base class for SQLAlchemy models.
"""
from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Generate a plural snake_case table name from the class name."""
        name = "".join(
            "_" + c.lower() if c.isupper() else c
            for c in cls.__name__
        ).lstrip("_")
        return f"{name}s"
