# marketplace/db/base.py
# Общая declarative база для SQLAlchemy.
# Модуль не импортирует модели, чтобы избежать циклических импортов.

from datetime import datetime, timezone

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# Явные имена ограничений, чтобы autogenerate в Alembic давал стабильные миграции
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


def utcnow() -> datetime:
    """Текущее время UTC без tzinfo, так оно хранится в колонках DateTime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
