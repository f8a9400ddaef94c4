from datetime import date

import pytest

from errors import InvalidArgument
from months import format_month, parse_month
from names import clean_name
from services import normalize_banks


def test_parse_month_returns_first_day() -> None:
    assert parse_month("2024-06") == date(2024, 6, 1)
    assert parse_month(" 2024-12 ") == date(2024, 12, 1)
    assert format_month(date(2024, 6, 17)) == "2024-06"


@pytest.mark.parametrize(
    "value", ["2024-6", "2024-13", "2024-00", "24-06", "2024/06", "", None]
)
def test_parse_month_rejects_malformed_values(value) -> None:
    with pytest.raises(InvalidArgument, match="expected YYYY-MM"):
        parse_month(value)


def test_clean_name_collapses_whitespace_and_drops_junk() -> None:
    assert clean_name("  Sber\u00a0 Bank ") == "Sber Bank"
    assert clean_name("Tinkoff\u200b") == "Tinkoff"
    assert clean_name("Аптеки®") == "Аптеки"
    assert clean_name("Cafe, bars & restaurants") == "Cafe, bars & restaurants"
    assert clean_name("\u2063") == ""


def test_normalize_banks_cleans_names_and_keeps_order() -> None:
    result = normalize_banks(
        [
            {
                "name": " Sber ",
                "categories": [
                    {"name": "Taxi\u00a0", "percent": 10},
                    {"name": "Pharmacy", "percent": 0},
                ],
            },
            {"name": "Alfa", "categories": [{"name": "Fuel", "percent": 100}]},
        ]
    )

    assert [bank.name for bank in result] == ["Sber", "Alfa"]
    assert [(c.name, c.percent) for c in result[0].categories] == [
        ("Taxi", 10.0),
        ("Pharmacy", 0.0),
    ]
    assert result[1].categories[0].percent == 100.0


def test_normalize_banks_rejects_nan_percent() -> None:
    with pytest.raises(InvalidArgument, match="between 0 and 100"):
        normalize_banks(
            [
                {
                    "name": "Sber",
                    "categories": [{"name": "Taxi", "percent": float("nan")}],
                }
            ]
        )
