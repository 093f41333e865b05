from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AccountKind(str, Enum):
    asset = "asset"
    liability = "liability"


class OwnerType(str, Enum):
    me = "me"
    spouse = "spouse"
    joint = "joint"


ACCOUNT_KIND_ENUM = SAEnum(AccountKind, name="accountkind")
OWNER_TYPE_ENUM = SAEnum(OwnerType, name="ownertype")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[AccountKind] = mapped_column(ACCOUNT_KIND_ENUM, nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(60))
    color: Mapped[Optional[str]] = mapped_column(String(20))

    accounts: Mapped[list["Account"]] = relationship(
        "Account", back_populates="category"
    )

    __table_args__ = (Index("ix_categories_name", "name"),)


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    legacy_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    bank: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    owner: Mapped[OwnerType] = mapped_column(
        OWNER_TYPE_ENUM, nullable=False, default=OwnerType.me
    )
    # Copy of category.kind; the category is authoritative.
    kind: Mapped[AccountKind] = mapped_column(ACCOUNT_KIND_ENUM, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped["Category"] = relationship("Category", back_populates="accounts")
    balances: Mapped[list["Balance"]] = relationship(
        "Balance",
        back_populates="account",
        cascade="all, delete-orphan",
    )
    transactions: Mapped[list["AccountTransaction"]] = relationship(
        "AccountTransaction",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_accounts_legacy_id", "legacy_id"),
        Index("ix_accounts_category_id", "category_id"),
        Index("ix_accounts_kind", "kind"),
        Index("ix_accounts_bank", "bank"),
        Index("ix_accounts_owner", "owner"),
    )


class Balance(Base, TimestampMixin):
    __tablename__ = "balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)

    account: Mapped["Account"] = relationship("Account", back_populates="balances")

    __table_args__ = (
        UniqueConstraint("account_id", "date", name="uq_balance_account_date"),
        Index("ix_balances_account_id", "account_id"),
        Index("ix_balances_account_date", "account_id", "date"),
    )


class AccountTransaction(Base, TimestampMixin):
    """Free-form dated movement kept alongside an account for export parity."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    legacy_id: Mapped[Optional[str]] = mapped_column(String(64))
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    account: Mapped["Account"] = relationship(
        "Account", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_legacy_id", "legacy_id"),
        Index("ix_transactions_account_date", "account_id", "date"),
    )


class MonthlySnapshot(Base):
    __tablename__ = "monthly_snapshots"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)
    assets_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    liabilities_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    net_worth: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class CategorySnapshot(Base):
    __tablename__ = "category_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    # Loose reference: snapshots survive category renames.
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[AccountKind] = mapped_column(ACCOUNT_KIND_ENUM, nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("ix_category_snapshots_month_category", "month", "category_id"),
        Index("ix_category_snapshots_category_id", "category_id"),
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profile"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(80))
    spouse_name: Mapped[Optional[str]] = mapped_column(String(80))
    user_color: Mapped[Optional[str]] = mapped_column(String(20))
    spouse_color: Mapped[Optional[str]] = mapped_column(String(20))


DEFAULT_CATEGORIES: list[dict[str, object]] = [
    {"name": "Property", "kind": AccountKind.asset, "icon": "lucide-home", "color": "primary"},
    {"name": "TFSA", "kind": AccountKind.asset, "icon": "lucide-leaf", "color": "success"},
    {"name": "RRSP", "kind": AccountKind.asset, "icon": "lucide-piggy-bank", "color": "warning"},
    {"name": "Cash", "kind": AccountKind.asset, "icon": "lucide-wallet", "color": "neutral"},
    {"name": "Crypto", "kind": AccountKind.asset, "icon": "lucide-bitcoin", "color": "secondary"},
    {"name": "Mortgage", "kind": AccountKind.liability, "icon": "lucide-home", "color": "error"},
    {
        "name": "Credit Card",
        "kind": AccountKind.liability,
        "icon": "lucide-credit-card",
        "color": "error",
    },
]
