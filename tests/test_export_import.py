from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database import Base, create_db_engine
from models import Account, AccountKind, Balance, Category, MonthlySnapshot, Profile
from schemas import AccountIn, ProfileIn
from services import (
    AccountService,
    CategoryService,
    ExportService,
    ImportFormatError,
    ProfileService,
)


def make_session():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _populate(session):
    CategoryService(session).seed_defaults()
    accounts = AccountService(session)
    checking = accounts.create(
        AccountIn(name="Checking", bank="X", category="Cash", initial_balance=1000.0, as_of=date(2024, 1, 10))
    )
    accounts.update_balance(checking.id, 1200.0, date(2024, 2, 5))
    accounts.create(
        AccountIn(name="Visa", bank="Y", category="Credit Card", initial_balance=200.0, as_of=date(2024, 2, 1))
    )
    ProfileService(session).update(ProfileIn(user_name="Sam", spouse_name="Alex"))


def test_export_document_shape() -> None:
    session = make_session()
    _populate(session)

    document = ExportService(session).export()

    assert document["version"] == 3
    assert "exportedAt" in document
    data = document["data"]
    assert set(data) == {
        "accounts",
        "balances",
        "categories",
        "transactions",
        "snapshots",
        "categorySnapshots",
        "profile",
    }
    account = data["accounts"][0]
    assert account["type"] == "asset"
    assert account["categoryId"] is not None
    assert data["balances"][0]["date"] == "2024-01-10"
    assert [s["month"] for s in data["snapshots"]] == ["2024-01", "2024-02"]
    assert data["snapshots"][1]["netWorth"] == 1000.0
    assert data["profile"][0]["userName"] == "Sam"


def test_export_then_import_restores_the_same_data() -> None:
    source = make_session()
    _populate(source)
    document = ExportService(source).export()

    target = make_session()
    CategoryService(target).seed_defaults()
    summary = ExportService(target).import_document(document)

    assert summary.counts["accounts"] == 2
    assert summary.counts["balances"] == 3
    assert summary.months_regenerated == 2
    assert ExportService(target).export()["data"]["accounts"] == document["data"]["accounts"]
    snapshots = target.scalars(select(MonthlySnapshot).order_by(MonthlySnapshot.month)).all()
    assert [(s.month, s.net_worth) for s in snapshots] == [("2024-01", 1000.0), ("2024-02", 1000.0)]


def test_import_rebuilds_stale_snapshots_and_aligns_kinds() -> None:
    session = make_session()
    _populate(session)
    document = ExportService(session).export()
    document["data"]["snapshots"][0]["netWorth"] = 42.0
    document["data"]["accounts"][1]["type"] = "asset"

    ExportService(session).import_document(document)

    visa = session.scalar(select(Account).where(Account.name == "Visa"))
    assert visa.kind == AccountKind.liability
    assert session.get(MonthlySnapshot, "2024-01").net_worth == 1000.0


def test_import_keeps_a_single_profile() -> None:
    session = make_session()
    document = {
        "version": 3,
        "data": {
            "profile": [{"id": 1, "userName": "A"}, {"id": 2, "userName": "B"}],
        },
    }

    summary = ExportService(session).import_document(document)

    assert summary.counts["profile"] == 1
    assert [p.user_name for p in session.scalars(select(Profile))] == ["A"]


@pytest.mark.parametrize(
    "payload",
    [
        "not a document",
        {"data": {}},
        {"version": "3", "data": {}},
        {"version": 3},
        {"version": 3, "data": {"accounts": [{"name": "No category", "type": "asset"}]}},
        {"version": 3, "data": {"categories": [{"id": 1, "name": "X", "type": "equity"}]}},
    ],
)
def test_malformed_documents_leave_existing_data_untouched(payload) -> None:
    session = make_session()
    _populate(session)

    with pytest.raises(ImportFormatError):
        ExportService(session).import_document(payload)

    assert len(session.scalars(select(Account)).all()) == 2
    assert len(session.scalars(select(Balance)).all()) == 3


def test_dangling_references_roll_back_the_import() -> None:
    session = make_session()
    _populate(session)
    document = {
        "version": 3,
        "data": {
            "categories": [{"id": 1, "name": "Cash", "type": "asset"}],
            "accounts": [{"id": 1, "name": "Orphan", "categoryId": 99, "type": "asset"}],
        },
    }

    with pytest.raises(ImportFormatError):
        ExportService(session).import_document(document)

    assert {a.name for a in session.scalars(select(Account))} == {"Checking", "Visa"}
    assert len(session.scalars(select(Category)).all()) == 7
