from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import InvalidArgument, NotFound, StorageError
from models import Bank, BankCashbackCategory, CashbackMonth, Category
from months import format_month, parse_month
from names import clean_name
from schemas import (
    BankCategoriesIn,
    BankOut,
    BankWithCategoriesOut,
    CashbackCategoryIn,
    CashbackCategoryOut,
    CashbackMonthOut,
    CategoryOut,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedCategory:
    name: str
    percent: float


@dataclass(frozen=True)
class NormalizedBank:
    name: str
    categories: tuple[NormalizedCategory, ...]


def _check_user_id(user_id: int) -> int:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise InvalidArgument("User id must be a positive integer")
    return user_id


def _coerce_bank(item: BankCategoriesIn | dict) -> BankCategoriesIn:
    if isinstance(item, BankCategoriesIn):
        return item
    try:
        return BankCategoriesIn.model_validate(item)
    except ValidationError as exc:
        raise InvalidArgument(f"Malformed bank entry: {exc}") from exc


def _normalize_category(bank_name: str, item: CashbackCategoryIn) -> NormalizedCategory:
    name = clean_name(item.name)
    if not name:
        raise InvalidArgument(f"Category name cannot be empty for bank '{bank_name}'")
    percent = float(item.percent)
    # NaN fails both comparisons, so it is rejected here too.
    if not 0 <= percent <= 100:
        raise InvalidArgument(
            f"Percent must be between 0 and 100 for category '{name}'"
        )
    return NormalizedCategory(name=name, percent=percent)


def normalize_banks(
    banks: Sequence[BankCategoriesIn | dict],
) -> list[NormalizedBank]:
    """Validate submitted facts and return them with cleaned names.

    Raises InvalidArgument on the first violation, before anything touches the
    database: a blank bank or category name, a bank without categories, or a
    percent outside [0, 100].
    """
    result: list[NormalizedBank] = []
    for raw in banks:
        bank = _coerce_bank(raw)
        name = clean_name(bank.name)
        if not name:
            raise InvalidArgument("Bank name cannot be empty")
        if not bank.categories:
            raise InvalidArgument(f"Bank '{name}' must have at least one category")
        categories = tuple(_normalize_category(name, item) for item in bank.categories)
        result.append(NormalizedBank(name=name, categories=categories))
    return result


def _search_pattern(query: str, label: str) -> str:
    needle = clean_name(query)
    if not needle:
        raise InvalidArgument(f"{label} query cannot be empty")
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _insert(session: Session, entity):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(entity)
    if dialect == "sqlite":
        return sqlite.insert(entity)
    raise StorageError(f"Unsupported database dialect: {dialect}")


@contextmanager
def _read_scope(session: Session, action: str) -> Iterator[None]:
    """Run a read, closing the transaction afterwards if the read opened it."""
    started = not session.in_transaction()
    with _storage_guard(session, action):
        yield
    if started:
        session.rollback()


@contextmanager
def _storage_guard(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"{action}: storage failure, rolled back")
        raise StorageError(f"{action} failed") from exc
    except Exception:
        session.rollback()
        raise


def name_order(session: Session, column):
    # Postgres sorts text by the database locale; "C" keeps byte order like SQLite.
    if session.get_bind().dialect.name == "postgresql":
        return column.collate("C")
    return column


class CatalogService:
    """Global bank/category name catalog shared by every user.

    ``resolve_*`` participate in the session's current transaction and leave
    committing to the caller.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def resolve_bank(self, name: str) -> int:
        return self._resolve(Bank, name, "Bank")

    def resolve_category(self, name: str) -> int:
        return self._resolve(Category, name, "Category")

    def find_bank(self, name: str) -> Optional[Bank]:
        return self.session.scalar(select(Bank).where(Bank.name == clean_name(name)))

    def find_category(self, name: str) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(Category.name == clean_name(name))
        )

    def _resolve(self, entity, name: str, label: str) -> int:
        clean = clean_name(name)
        if not clean:
            raise InvalidArgument(f"{label} name cannot be empty")
        # An existing row is neither locked nor rewritten; its id comes from the
        # follow-up select.
        stmt = (
            _insert(self.session, entity)
            .values(name=clean)
            .on_conflict_do_nothing(index_elements=[entity.name])
            .returning(entity.id)
        )
        created = self.session.execute(stmt).scalar_one_or_none()
        if created is not None:
            return created
        return self.session.execute(
            select(entity.id).where(entity.name == clean)
        ).scalar_one()


class CashbackMonthService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = _check_user_id(user_id)
        self.catalog = CatalogService(session)

    def replace_month(
        self, month: str, banks: Sequence[BankCategoriesIn | dict]
    ) -> int:
        """Make ``banks`` the complete fact set of the month.

        Returns the number of facts written. Either every fact lands or the
        month is left exactly as it was.
        """
        month_date = parse_month(month)
        normalized = normalize_banks(banks)
        with _storage_guard(self.session, "replace_month"):
            month_id = self._lock_month(month_date)
            removed = self.session.execute(
                delete(BankCashbackCategory)
                .where(BankCashbackCategory.cashback_month_id == month_id)
                .execution_options(synchronize_session=False)
            ).rowcount
            written = self._upsert_facts(month_id, normalized)
            self.session.commit()
        logger.info(
            f"replace_month: user_id={self.user_id} month={month} "
            f"removed={removed} written={written}"
        )
        return written

    def merge_month(self, month: str, banks: Sequence[BankCategoriesIn | dict]) -> int:
        """Upsert the given facts, leaving every other pair of the month alone."""
        month_date = parse_month(month)
        normalized = normalize_banks(banks)
        with _storage_guard(self.session, "merge_month"):
            month_id = self._lock_month(month_date)
            written = self._upsert_facts(month_id, normalized)
            self.session.commit()
        logger.info(
            f"merge_month: user_id={self.user_id} month={month} written={written}"
        )
        return written

    def replace_bank_categories(
        self,
        month: str,
        bank_name: str,
        categories: Sequence[CashbackCategoryIn | dict],
    ) -> int:
        month_date = parse_month(month)
        bank = normalize_banks([{"name": bank_name, "categories": list(categories)}])[0]
        with _storage_guard(self.session, "replace_bank_categories"):
            month_id = self.session.scalar(
                select(CashbackMonth.id)
                .where(
                    CashbackMonth.user_id == self.user_id,
                    CashbackMonth.month == month_date,
                )
                .with_for_update()
            )
            bank_row = self.catalog.find_bank(bank.name)
            present = None
            if month_id is not None and bank_row is not None:
                present = self.session.scalar(
                    select(BankCashbackCategory.id)
                    .where(
                        BankCashbackCategory.cashback_month_id == month_id,
                        BankCashbackCategory.bank_id == bank_row.id,
                    )
                    .limit(1)
                )
            if present is None:
                raise NotFound(f"Bank '{bank.name}' not found in {month}")

            self.session.execute(
                delete(BankCashbackCategory)
                .where(
                    BankCashbackCategory.cashback_month_id == month_id,
                    BankCashbackCategory.bank_id == bank_row.id,
                )
                .execution_options(synchronize_session=False)
            )
            written = self._upsert_facts(month_id, [bank])
            self.session.commit()
        logger.info(
            f"replace_bank_categories: user_id={self.user_id} month={month} "
            f"bank={bank.name} written={written}"
        )
        return written

    def get_month(self, month: str) -> Optional[CashbackMonthOut]:
        """Nested view of the month, or None when the user never saved it."""
        month_date = parse_month(month)
        stmt = (
            select(
                CashbackMonth.id,
                Bank.id,
                Bank.name,
                Category.id,
                Category.name,
                BankCashbackCategory.percent,
            )
            .select_from(CashbackMonth)
            .outerjoin(
                BankCashbackCategory,
                BankCashbackCategory.cashback_month_id == CashbackMonth.id,
            )
            .outerjoin(Bank, Bank.id == BankCashbackCategory.bank_id)
            .outerjoin(Category, Category.id == BankCashbackCategory.category_id)
            .where(
                CashbackMonth.user_id == self.user_id,
                CashbackMonth.month == month_date,
            )
            .order_by(
                name_order(self.session, Bank.name),
                name_order(self.session, Category.name),
            )
        )
        with _read_scope(self.session, "get_month"):
            rows = self.session.execute(stmt).all()
        if not rows:
            return None

        grouped: dict[int, BankWithCategoriesOut] = {}
        for _month_id, bank_id, bank_name, category_id, category_name, percent in rows:
            if bank_id is None or category_id is None:
                continue
            entry = grouped.get(bank_id)
            if entry is None:
                entry = BankWithCategoriesOut(
                    bank=BankOut(id=bank_id, name=bank_name), categories=[]
                )
                grouped[bank_id] = entry
            entry.categories.append(
                CashbackCategoryOut(
                    category=CategoryOut(id=category_id, name=category_name),
                    percent=percent,
                )
            )

        return CashbackMonthOut(
            month=format_month(month_date),
            user_id=self.user_id,
            banks=[entry for entry in grouped.values() if entry.categories],
        )

    def remove_bank(self, month: str, bank_name: str) -> int:
        """Drop every fact of one bank from the month.

        Zero removed rows is a normal outcome, not an error.
        """
        month_date = parse_month(month)
        clean = clean_name(bank_name)
        if not clean:
            raise InvalidArgument("Bank name cannot be empty")
        stmt = (
            delete(BankCashbackCategory)
            .where(
                BankCashbackCategory.cashback_month_id.in_(
                    self._month_ids(month_date)
                ),
                BankCashbackCategory.bank_id.in_(
                    select(Bank.id).where(Bank.name == clean)
                ),
            )
            .execution_options(synchronize_session=False)
        )
        with _storage_guard(self.session, "remove_bank"):
            removed = self.session.execute(stmt).rowcount
            self.session.commit()
        logger.info(
            f"remove_bank: user_id={self.user_id} month={month} "
            f"bank={clean} removed={removed}"
        )
        return removed

    def remove_category(self, month: str, bank_name: str, category_name: str) -> bool:
        """Drop one (bank, category) fact; raises NotFound when there is none."""
        month_date = parse_month(month)
        bank = clean_name(bank_name)
        category = clean_name(category_name)
        if not bank:
            raise InvalidArgument("Bank name cannot be empty")
        if not category:
            raise InvalidArgument("Category name cannot be empty")
        stmt = (
            delete(BankCashbackCategory)
            .where(
                BankCashbackCategory.cashback_month_id.in_(
                    self._month_ids(month_date)
                ),
                BankCashbackCategory.bank_id.in_(
                    select(Bank.id).where(Bank.name == bank)
                ),
                BankCashbackCategory.category_id.in_(
                    select(Category.id).where(Category.name == category)
                ),
            )
            .execution_options(synchronize_session=False)
        )
        with _storage_guard(self.session, "remove_category"):
            removed = self.session.execute(stmt).rowcount
            self.session.commit()
        if removed == 0:
            raise NotFound(
                f"Category '{category}' not found for bank '{bank}' in {month}"
            )
        logger.info(
            f"remove_category: user_id={self.user_id} month={month} "
            f"bank={bank} category={category}"
        )
        return True

    def _month_ids(self, month_date: date):
        return select(CashbackMonth.id).where(
            CashbackMonth.user_id == self.user_id,
            CashbackMonth.month == month_date,
        )

    def _lock_month(self, month_date: date) -> int:
        # On Postgres the DO UPDATE branch row-locks the month until commit,
        # which serializes concurrent writers of the same (user, month).
        stmt = _insert(self.session, CashbackMonth).values(
            user_id=self.user_id, month=month_date
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CashbackMonth.user_id, CashbackMonth.month],
            set_={"month": stmt.excluded.month},
        ).returning(CashbackMonth.id)
        return self.session.execute(stmt).scalar_one()

    def _upsert_facts(self, month_id: int, banks: Sequence[NormalizedBank]) -> int:
        written = 0
        for bank in banks:
            bank_id = self.catalog.resolve_bank(bank.name)
            for item in bank.categories:
                category_id = self.catalog.resolve_category(item.name)
                stmt = _insert(self.session, BankCashbackCategory).values(
                    cashback_month_id=month_id,
                    bank_id=bank_id,
                    category_id=category_id,
                    percent=item.percent,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[
                        BankCashbackCategory.cashback_month_id,
                        BankCashbackCategory.bank_id,
                        BankCashbackCategory.category_id,
                    ],
                    set_={"percent": stmt.excluded.percent},
                )
                self.session.execute(stmt)
                written += 1
        return written


class CashbackSearchService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = _check_user_id(user_id)

    def banks_offering_category(self, month: str, query: str) -> list[BankOut]:
        month_date = parse_month(month)
        pattern = _search_pattern(query, "Category")
        stmt = (
            select(Bank.id, Bank.name)
            .join(BankCashbackCategory, BankCashbackCategory.bank_id == Bank.id)
            .join(Category, Category.id == BankCashbackCategory.category_id)
            .join(
                CashbackMonth,
                CashbackMonth.id == BankCashbackCategory.cashback_month_id,
            )
            .where(
                CashbackMonth.user_id == self.user_id,
                CashbackMonth.month == month_date,
                Category.name.ilike(pattern, escape="\\"),
            )
            .group_by(Bank.id, Bank.name)
            .order_by(name_order(self.session, Bank.name))
        )
        with _read_scope(self.session, "banks_offering_category"):
            rows = self.session.execute(stmt).all()
        return [BankOut(id=bank_id, name=name) for bank_id, name in rows]

    def categories_of_bank(self, month: str, query: str) -> list[CategoryOut]:
        month_date = parse_month(month)
        pattern = _search_pattern(query, "Bank")
        stmt = (
            select(Category.id, Category.name)
            .join(
                BankCashbackCategory,
                BankCashbackCategory.category_id == Category.id,
            )
            .join(Bank, Bank.id == BankCashbackCategory.bank_id)
            .join(
                CashbackMonth,
                CashbackMonth.id == BankCashbackCategory.cashback_month_id,
            )
            .where(
                CashbackMonth.user_id == self.user_id,
                CashbackMonth.month == month_date,
                Bank.name.ilike(pattern, escape="\\"),
            )
            .group_by(Category.id, Category.name)
            .order_by(name_order(self.session, Category.name))
        )
        with _read_scope(self.session, "categories_of_bank"):
            rows = self.session.execute(stmt).all()
        return [CategoryOut(id=category_id, name=name) for category_id, name in rows]
