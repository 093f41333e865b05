from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker

from database import Base, create_db_engine
from models import AccountKind, MonthlySnapshot, OwnerType, Profile
from schemas import AccountIn, ProfileIn
from services import (
    AccountService,
    CategoryService,
    NetWorthService,
    ProfileService,
    owner_color,
    owner_label,
    percent_change,
)


def make_session():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    CategoryService(session).seed_defaults()
    return session


def _add_snapshot(session, month, net_worth, assets=None, liabilities=0.0):
    session.add(
        MonthlySnapshot(
            month=month,
            assets_total=net_worth if assets is None else assets,
            liabilities_total=liabilities,
            net_worth=net_worth,
        )
    )
    session.commit()


def test_percent_change_guards_zero_base() -> None:
    assert percent_change(150.0, 100.0) == 50.0
    assert percent_change(-50.0, -100.0) == 50.0
    assert percent_change(10.0, 0.0) == 0.0
    assert percent_change(10.0, None) == 0.0


def test_monthly_growth_compares_last_two_snapshots() -> None:
    session = make_session()
    service = NetWorthService(session)
    assert service.monthly_growth().growth == 0.0

    _add_snapshot(session, "2024-01", 1000.0)
    _add_snapshot(session, "2024-02", 1100.0)

    growth = service.monthly_growth()
    assert growth.growth == 100.0
    assert growth.percentage == pytest.approx(10.0)


def test_growth_for_period_uses_first_snapshot_in_range() -> None:
    session = make_session()
    service = NetWorthService(session)
    _add_snapshot(session, "2023-06", 0.0)
    _add_snapshot(session, "2024-01", 800.0)
    _add_snapshot(session, "2024-03", 1000.0)

    since_jan = service.growth_for_period(date(2024, 1, 1))
    assert (since_jan.growth, since_jan.percentage) == (200.0, 25.0)

    all_time = service.growth_for_period(None)
    assert all_time.growth == 1000.0
    assert all_time.percentage == 0.0

    with pytest.raises(ValueError):
        service.growth_for_period(None, metric="cash")


def test_history_filters_by_start() -> None:
    session = make_session()
    service = NetWorthService(session)
    _add_snapshot(session, "2023-12", 10.0)
    _add_snapshot(session, "2024-01", 20.0)

    assert service.history() == [
        {"date": "2023-12-01", "value": 10.0},
        {"date": "2024-01-01", "value": 20.0},
    ]
    assert service.history(date(2024, 1, 1)) == [{"date": "2024-01-01", "value": 20.0}]


def test_current_totals_and_breakdowns() -> None:
    session = make_session()
    accounts = AccountService(session)
    accounts.create(AccountIn(name="Checking", category="Cash", initial_balance=300.0, as_of=date(2024, 1, 1)))
    accounts.create(AccountIn(name="Wallet", category="Crypto", initial_balance=100.0, as_of=date(2024, 1, 1)))
    accounts.create(
        AccountIn(name="Visa", category="Credit Card", owner=OwnerType.spouse, initial_balance=50.0, as_of=date(2024, 1, 1))
    )
    ProfileService(session).update(ProfileIn(spouse_name="Alex"))
    service = NetWorthService(session)

    assert service.current_totals() == {
        "assets_total": 400.0,
        "liabilities_total": 50.0,
        "net_worth": 350.0,
    }

    breakdown = service.asset_category_breakdown()
    assert [(row["label"], row["percentage"]) for row in breakdown] == [("Cash", 75.0), ("Crypto", 25.0)]

    [group] = service.accounts_grouped_by_category(AccountKind.liability)
    assert group["category"] == "Credit Card"
    assert group["total"] == 50.0
    assert group["accounts"][0]["owner"] == "Alex"

    summary = service.summary()
    assert summary["net_worth"] == 350.0
    assert summary["monthly_growth"] == 0.0


def test_owner_labels_fall_back_to_defaults() -> None:
    profile = Profile(user_name="Sam", user_color="#123456")

    assert owner_label(OwnerType.me, profile) == "Sam"
    assert owner_label(OwnerType.spouse, profile) == "Spouse"
    assert owner_label(OwnerType.joint, profile) == "Joint"
    assert owner_label(OwnerType.me, None) == "Me"
    assert owner_color(OwnerType.me, profile) == "#123456"
    assert owner_color(OwnerType.spouse, None) == "secondary"
    assert owner_color(OwnerType.joint, profile) == "info"
