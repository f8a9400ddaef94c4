from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class Bank(Base, TimestampMixin):
    __tablename__ = "banks"
    __table_args__ = (UniqueConstraint("name", name="uq_banks_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("name", name="uq_categories_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class CashbackMonth(Base, TimestampMixin):
    __tablename__ = "cashback_months"
    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_cashback_month_user_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    # Always the first day of the calendar month.
    month: Mapped[date] = mapped_column(Date, nullable=False)

    facts: Mapped[list["BankCashbackCategory"]] = relationship(
        "BankCashbackCategory",
        back_populates="cashback_month",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class BankCashbackCategory(Base):
    __tablename__ = "bank_cashback_categories"
    __table_args__ = (
        UniqueConstraint(
            "cashback_month_id",
            "bank_id",
            "category_id",
            name="uq_bank_cashback_month_bank_category",
        ),
        CheckConstraint(
            "percent >= 0 AND percent <= 100", name="ck_bank_cashback_percent_range"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cashback_month_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("cashback_months.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bank_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("banks.id"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=False
    )
    percent: Mapped[float] = mapped_column(Float, nullable=False)

    cashback_month: Mapped[CashbackMonth] = relationship(
        "CashbackMonth", back_populates="facts"
    )