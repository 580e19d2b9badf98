from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import settings
from models.sqlite_config import (
    configure_sqlite_engine,
    is_memory_url,
    is_sqlite_url,
    sqlite_connect_args,
)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False, **kwargs) -> Engine:
    built = create_engine(
        url,
        connect_args=sqlite_connect_args(url),
        echo=echo,
        **kwargs,
    )
    if is_sqlite_url(url):
        configure_sqlite_engine(built, use_wal=not is_memory_url(url))
    return built


engine = build_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
