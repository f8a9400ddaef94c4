from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import pytest

from database import Base, configure_sqlite
from errors import InvalidArgument
from services import CashbackMonthService, CashbackSearchService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session) -> None:
    CashbackMonthService(session, 42).replace_month(
        "2024-06",
        [
            {
                "name": "Tinkoff",
                "categories": [
                    {"name": "Аптеки", "percent": 5},
                    {"name": "Taxi", "percent": 3},
                ],
            },
            {
                "name": "Sber",
                "categories": [
                    {"name": "Аптеки", "percent": 4},
                    {"name": "Pharmacy", "percent": 2},
                    {"name": "Online Pharmacy", "percent": 1},
                ],
            },
            {"name": "Alfa", "categories": [{"name": "Taxi Premium", "percent": 7}]},
        ],
    )


def test_banks_offering_category_is_case_insensitive_substring() -> None:
    session = make_session()
    seed(session)
    search = CashbackSearchService(session, 42)

    assert [b.name for b in search.banks_offering_category("2024-06", "апте")] == [
        "Sber",
        "Tinkoff",
    ]
    assert [b.name for b in search.banks_offering_category("2024-06", "TAXI")] == [
        "Alfa",
        "Tinkoff",
    ]
    assert [b.name for b in search.banks_offering_category("2024-06", "pharm")] == [
        "Sber"
    ]


def test_banks_are_deduplicated() -> None:
    session = make_session()
    seed(session)
    search = CashbackSearchService(session, 42)

    banks = search.banks_offering_category("2024-06", "pharmacy")

    assert [b.name for b in banks] == ["Sber"]


def test_categories_of_bank_is_ordered_by_name() -> None:
    session = make_session()
    seed(session)
    search = CashbackSearchService(session, 42)

    assert [c.name for c in search.categories_of_bank("2024-06", "sber")] == [
        "Online Pharmacy",
        "Pharmacy",
        "Аптеки",
    ]
    assert [c.name for c in search.categories_of_bank("2024-06", "INKO")] == [
        "Taxi",
        "Аптеки",
    ]


def test_search_misses_are_empty_lists() -> None:
    session = make_session()
    seed(session)
    search = CashbackSearchService(session, 42)

    assert search.banks_offering_category("2024-07", "Taxi") == []
    assert search.banks_offering_category("2024-06", "Fuel") == []
    assert search.categories_of_bank("2024-06", "%") == []
    assert CashbackSearchService(session, 7).categories_of_bank("2024-06", "Sber") == []


def test_blank_query_is_rejected() -> None:
    session = make_session()
    search = CashbackSearchService(session, 42)

    with pytest.raises(InvalidArgument, match="Category query cannot be empty"):
        search.banks_offering_category("2024-06", "   ")
    with pytest.raises(InvalidArgument, match="Bank query cannot be empty"):
        search.categories_of_bank("2024-06", "")
