# marketplace/db/session.py
# Инициализация SQLAlchemy engine и фабрики сессий.
# Поддерживает как Postgres, так и SQLite (для тестов/локального использования).

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from marketplace.core.config import settings


def make_engine(url: str):
    """Создаёт engine; для sqlite нужны connect_args."""
    # timeout: параллельные писатели sqlite ждут блокировку, а не падают сразу
    connect_args = {"check_same_thread": False, "timeout": 30} if url.startswith("sqlite") else {}
    # pool_pre_ping полезен для долгоживущих соединений с Postgres
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


DATABASE_URL = settings.DATABASE_URL

engine = make_engine(DATABASE_URL)

# expire_on_commit=False: после commit объекты заказа ещё нужны для ответа и уведомлений
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
