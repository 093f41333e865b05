from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database import Base, create_db_engine
from models import Account, AccountKind, Category, CategorySnapshot, MonthlySnapshot
from schemas import AccountIn, CategoryIn
from services import (
    AccountService,
    CategoryService,
    NotFoundError,
    ReferentialIntegrityError,
)


def make_session():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_seed_defaults_only_fills_an_empty_table() -> None:
    session = make_session()
    service = CategoryService(session)

    assert service.seed_defaults() == 7
    assert service.seed_defaults() == 0
    names = {c.name for c in service.list_all()}
    assert {"Property", "TFSA", "RRSP", "Cash", "Crypto", "Mortgage", "Credit Card"} == names
    assert service.find_by_name("mortgage").kind == AccountKind.liability


def test_duplicate_names_are_rejected_case_insensitively() -> None:
    session = make_session()
    service = CategoryService(session)
    service.create(CategoryIn(name="Brokerage", kind=AccountKind.asset))

    with pytest.raises(ValueError):
        service.create(CategoryIn(name="  brokerage ", kind=AccountKind.asset))
    assert len(service.list_all()) == 1


def test_rename_to_own_name_is_allowed() -> None:
    session = make_session()
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Brokerage", kind=AccountKind.asset))

    updated = service.update(category.id, CategoryIn(name="brokerage", kind=AccountKind.asset, icon="x"))

    assert updated.name == "brokerage"
    assert updated.icon == "x"


def test_delete_is_blocked_while_accounts_use_the_category() -> None:
    session = make_session()
    service = CategoryService(session)
    service.seed_defaults()
    AccountService(session).create(
        AccountIn(name="Checking", category="Cash", initial_balance=5.0, as_of=date(2024, 1, 1))
    )
    cash = service.find_by_name("Cash")

    with pytest.raises(ReferentialIntegrityError):
        service.delete(cash.id)
    assert session.get(Category, cash.id) is not None

    crypto = service.find_by_name("Crypto")
    service.delete(crypto.id)
    with pytest.raises(NotFoundError):
        service.get(crypto.id)


def test_kind_change_cascades_to_accounts_and_snapshots() -> None:
    session = make_session()
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Loan", kind=AccountKind.asset))
    account = AccountService(session).create(
        AccountIn(name="Car loan", category="Loan", initial_balance=300.0, as_of=date(2024, 2, 1))
    )
    assert session.get(MonthlySnapshot, "2024-02").net_worth == 300.0

    service.update(category.id, CategoryIn(name="Loan", kind=AccountKind.liability))

    assert session.scalar(select(Account.kind).where(Account.id == account.id)) == AccountKind.liability
    feb = session.get(MonthlySnapshot, "2024-02")
    assert (feb.assets_total, feb.liabilities_total, feb.net_worth) == (0.0, 300.0, -300.0)
    row = session.scalar(select(CategorySnapshot).where(CategorySnapshot.month == "2024-02"))
    assert row.kind == AccountKind.liability
