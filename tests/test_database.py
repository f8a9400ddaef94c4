from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

import pytest

import database
from database import Base, configure_sqlite, session_scope
from models import Bank
from services import CatalogService


def make_sessionmaker():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def test_session_scope_commits_on_success(monkeypatch) -> None:
    factory = make_sessionmaker()
    monkeypatch.setattr(database, "SessionLocal", factory)

    with session_scope() as session:
        CatalogService(session).resolve_bank("Sber")

    with factory() as session:
        assert session.scalar(select(func.count()).select_from(Bank)) == 1


def test_session_scope_rolls_back_on_error(monkeypatch) -> None:
    factory = make_sessionmaker()
    monkeypatch.setattr(database, "SessionLocal", factory)

    with pytest.raises(RuntimeError):
        with session_scope() as session:
            CatalogService(session).resolve_bank("Sber")
            raise RuntimeError("handler blew up")

    with factory() as session:
        assert session.scalar(select(func.count()).select_from(Bank)) == 0


def test_sqlite_lower_folds_non_ascii() -> None:
    factory = make_sessionmaker()

    with factory() as session:
        assert session.scalar(select(func.lower("АПТЕКИ"))) == "аптеки"
