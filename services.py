from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import get_settings
from models import (
    DEFAULT_CATEGORIES,
    Account,
    AccountKind,
    AccountTransaction,
    Balance,
    Category,
    CategorySnapshot,
    MonthlySnapshot,
    OwnerType,
    Profile,
)
from periods import month_key, parse_month
from schemas import (
    EXPORT_VERSION,
    AccountIn,
    AccountUpdateIn,
    CategoryIn,
    DatabaseExport,
    ExportAccount,
    ExportBalance,
    ExportCategory,
    ExportCategorySnapshot,
    ExportData,
    ExportMonthlySnapshot,
    ExportProfile,
    ExportTransaction,
    ProfileIn,
)
from snapshots import regenerate_all_snapshots

logger = logging.getLogger(__name__)

CHART_COLORS = [
    "#6366f1",
    "#22d3ee",
    "#10b981",
    "#f59e42",
    "#ec4899",
    "#8b5cf6",
    "#f97316",
]

GROWTH_METRICS = ("net_worth", "assets_total", "liabilities_total")


class NotFoundError(ValueError):
    pass


class CategoryNotFound(NotFoundError):
    pass


class ReferentialIntegrityError(ValueError):
    pass


class ImportFormatError(ValueError):
    pass


def local_today(timezone_name: Optional[str] = None) -> date:
    return datetime.now(ZoneInfo(timezone_name or get_settings().timezone)).date()


def percent_change(current: float, base: Optional[float]) -> float:
    if not base:
        return 0.0
    pct = ((current - base) / abs(base)) * 100
    return pct if math.isfinite(pct) else 0.0


def owner_label(owner: OwnerType, profile: Optional[Profile]) -> str:
    if owner == OwnerType.me:
        return (profile.user_name if profile else None) or "Me"
    if owner == OwnerType.spouse:
        return (profile.spouse_name if profile else None) or "Spouse"
    return "Joint"


def owner_color(owner: OwnerType, profile: Optional[Profile]) -> str:
    if owner == OwnerType.me:
        return (profile.user_color if profile else None) or "primary"
    if owner == OwnerType.spouse:
        return (profile.spouse_color if profile else None) or "secondary"
    return "info"


def latest_balances(session: Session) -> dict[int, float]:
    """Most recent balance value per account, whatever its date."""
    rows = session.execute(
        select(Balance.account_id, Balance.value).order_by(
            Balance.account_id, Balance.date, Balance.id
        )
    ).all()
    return {row.account_id: float(row.value) for row in rows}


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.kind, Category.name)
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def find_by_name(self, name: str) -> Optional[Category]:
        return self.session.scalar(
            select(Category)
            .where(func.lower(Category.name) == name.strip().lower())
            .order_by(Category.id)
            .limit(1)
        )

    def resolve(self, name: str) -> Category:
        category = self.find_by_name(name)
        if category:
            return category

        wanted = name.strip().lower()
        best: Optional[Category] = None
        best_distance: Optional[int] = None
        for candidate in self.list_all():
            dist = int(Levenshtein.distance(wanted, candidate.name.lower()))
            if best_distance is None or dist < best_distance:
                best, best_distance = candidate, dist
        message = f'Category "{name.strip()}" not found'
        if best is not None and best_distance is not None and best_distance <= 2:
            message += f'; did you mean "{best.name}"?'
        raise CategoryNotFound(message)

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        existing = self.find_by_name(name)
        if existing and existing.id != exclude_id:
            raise ValueError(f'Category "{name}" already exists')

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValueError("Category name is required")
        self._ensure_unique_name(name)
        category = Category(name=name, kind=data.kind, icon=data.icon, color=data.color)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        if not name:
            raise ValueError("Category name is required")
        self._ensure_unique_name(name, exclude_id=category_id)

        kind_changed = category.kind != data.kind
        category.name = name
        category.kind = data.kind
        category.icon = data.icon
        category.color = data.color
        self.session.execute(
            update(Account)
            .where(Account.category_id == category_id)
            .values(kind=data.kind)
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        if kind_changed:
            logger.info(f"category_kind_changed: id={category_id} kind={data.kind.value}")
        regenerate_all_snapshots(self.session)
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self.session.execute(
            select(func.count(Account.id)).where(Account.category_id == category_id)
        ).scalar_one()
        if in_use:
            raise ReferentialIntegrityError(
                f"Cannot delete category: {in_use} account(s) are using it"
            )
        self.session.delete(category)
        self.session.commit()

    def seed_defaults(self) -> int:
        count = self.session.execute(select(func.count(Category.id))).scalar_one()
        if count:
            return 0
        for row in DEFAULT_CATEGORIES:
            self.session.add(Category(**row))
        self.session.commit()
        logger.info(f"categories_seeded: count={len(DEFAULT_CATEGORIES)}")
        return len(DEFAULT_CATEGORIES)


@dataclass
class AccountDetails:
    id: int
    name: str
    bank: str
    category_id: int
    category_name: str
    owner: OwnerType
    owner_name: str
    owner_color: str
    kind: AccountKind
    notes: Optional[str]
    created_at: datetime
    latest_balance: float


class AccountService:
    def __init__(self, session: Session, timezone_name: Optional[str] = None) -> None:
        self.session = session
        self.timezone_name = timezone_name

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account:
            raise NotFoundError("Account not found")
        return account

    def list_with_details(self) -> list[AccountDetails]:
        categories = {c.id: c.name for c in self.session.scalars(select(Category))}
        profile = ProfileService(self.session).get()
        latest = latest_balances(self.session)
        accounts = self.session.scalars(select(Account).order_by(Account.id)).all()
        return [
            AccountDetails(
                id=account.id,
                name=account.name,
                bank=account.bank,
                category_id=account.category_id,
                category_name=categories.get(account.category_id, "Unknown"),
                owner=account.owner,
                owner_name=owner_label(account.owner, profile),
                owner_color=owner_color(account.owner, profile),
                kind=account.kind,
                notes=account.notes,
                created_at=account.created_at,
                latest_balance=latest.get(account.id, 0.0),
            )
            for account in accounts
        ]

    def create(self, data: AccountIn) -> Account:
        category = CategoryService(self.session).resolve(data.category)
        as_of = data.as_of or local_today(self.timezone_name)
        account = Account(
            name=data.name,
            bank=data.bank,
            category_id=category.id,
            owner=data.owner,
            kind=category.kind,
            notes=data.notes,
        )
        account.balances.append(Balance(date=as_of, value=data.initial_balance))
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_created: id={account.id} kind={account.kind.value}")
        regenerate_all_snapshots(self.session)
        return account

    def update(self, account_id: int, data: AccountUpdateIn) -> Account:
        account = self.get(account_id)
        category = CategoryService(self.session).resolve(data.category)
        account.name = data.name
        account.bank = data.bank
        account.category_id = category.id
        account.owner = data.owner
        account.kind = category.kind
        account.notes = data.notes
        self.session.commit()
        regenerate_all_snapshots(self.session)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        # Balances and transactions go with it through the relationship cascade.
        self.session.delete(account)
        self.session.commit()
        logger.info(f"account_deleted: id={account_id}")
        regenerate_all_snapshots(self.session)

    def balances(self, account_id: int) -> list[Balance]:
        self.get(account_id)
        stmt = (
            select(Balance)
            .where(Balance.account_id == account_id)
            .order_by(Balance.date, Balance.id)
        )
        return self.session.scalars(stmt).all()

    def update_balance(
        self, account_id: int, value: float, on: Optional[date] = None
    ) -> Balance:
        """Record ``value`` for the account on ``on``, replacing that day's value."""
        self.get(account_id)
        on = on or local_today(self.timezone_name)
        balance = self.session.scalar(
            select(Balance).where(Balance.account_id == account_id, Balance.date == on)
        )
        if balance:
            balance.value = value
        else:
            balance = Balance(account_id=account_id, date=on, value=value)
            self.session.add(balance)
        self.session.commit()
        self.session.refresh(balance)
        regenerate_all_snapshots(self.session)
        return balance


class ProfileService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self) -> Optional[Profile]:
        return self.session.scalar(select(Profile).order_by(Profile.id).limit(1))

    def update(self, data: ProfileIn) -> Profile:
        profile = self.get()
        if profile is None:
            profile = Profile()
            self.session.add(profile)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(profile, key, value)
        self.session.commit()
        self.session.refresh(profile)
        return profile


@dataclass
class Growth:
    growth: float = 0.0
    percentage: float = 0.0


class NetWorthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def monthly_snapshots(self) -> list[MonthlySnapshot]:
        stmt = select(MonthlySnapshot).order_by(MonthlySnapshot.month)
        return self.session.scalars(stmt).all()

    def category_snapshots(self, month: str) -> list[CategorySnapshot]:
        parse_month(month)
        stmt = (
            select(CategorySnapshot)
            .where(CategorySnapshot.month == month)
            .order_by(CategorySnapshot.category_id)
        )
        return self.session.scalars(stmt).all()

    def current_totals(self) -> dict[str, float]:
        latest = latest_balances(self.session)
        assets = 0.0
        liabilities = 0.0
        for account in self.session.scalars(select(Account)):
            value = latest.get(account.id)
            if value is None:
                continue
            if account.kind == AccountKind.asset:
                assets += value
            else:
                liabilities += value
        return {
            "assets_total": assets,
            "liabilities_total": liabilities,
            "net_worth": assets - liabilities,
        }

    def monthly_growth(self) -> Growth:
        snapshots = self.monthly_snapshots()
        if len(snapshots) < 2:
            return Growth()
        previous, latest = snapshots[-2], snapshots[-1]
        return Growth(
            growth=latest.net_worth - previous.net_worth,
            percentage=percent_change(latest.net_worth, previous.net_worth),
        )

    def growth_for_period(
        self, start: Optional[date], metric: str = "net_worth"
    ) -> Growth:
        if metric not in GROWTH_METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        snapshots = self.monthly_snapshots()
        if not snapshots:
            return Growth()
        current = getattr(snapshots[-1], metric)

        if start is None:
            if len(snapshots) < 2:
                return Growth()
            base = getattr(snapshots[0], metric)
        else:
            start_month = month_key(start)
            base_snapshot = next(
                (s for s in snapshots if s.month >= start_month), snapshots[0]
            )
            base = getattr(base_snapshot, metric)

        return Growth(growth=current - base, percentage=percent_change(current, base))

    def history(self, start: Optional[date] = None) -> list[dict[str, object]]:
        points = [
            {"date": f"{s.month}-01", "value": s.net_worth}
            for s in self.monthly_snapshots()
        ]
        if start is None:
            return points
        start_str = start.isoformat()
        return [p for p in points if p["date"] >= start_str]

    def accounts_grouped_by_category(self, kind: AccountKind) -> list[dict[str, object]]:
        groups: dict[str, dict[str, Any]] = {}
        for acc in AccountService(self.session).list_with_details():
            if acc.kind != kind:
                continue
            group = groups.setdefault(acc.category_name, {"accounts": [], "total": 0.0})
            group["accounts"].append(
                {
                    "id": acc.id,
                    "name": acc.name,
                    "owner": acc.owner_name,
                    "owner_color": acc.owner_color,
                    "bank": acc.bank,
                    "balance": acc.latest_balance,
                }
            )
            group["total"] += acc.latest_balance
        out = [
            {"category": name, "accounts": g["accounts"], "total": g["total"]}
            for name, g in groups.items()
        ]
        out.sort(key=lambda item: item["total"], reverse=True)
        return out

    def asset_category_breakdown(self) -> list[dict[str, object]]:
        totals: dict[str, float] = {}
        for acc in AccountService(self.session).list_with_details():
            if acc.kind != AccountKind.asset:
                continue
            totals[acc.category_name] = totals.get(acc.category_name, 0.0) + acc.latest_balance
        total_assets = sum(totals.values())
        rows = sorted(
            ((label, value) for label, value in totals.items() if value > 0),
            key=lambda item: item[1],
            reverse=True,
        )
        return [
            {
                "label": label,
                "value": value,
                "percentage": (value / total_assets) * 100 if total_assets > 0 else 0.0,
                "color": CHART_COLORS[idx % len(CHART_COLORS)],
            }
            for idx, (label, value) in enumerate(rows)
        ]

    def summary(self, start: Optional[date] = None) -> dict[str, object]:
        totals = self.current_totals()
        monthly = self.monthly_growth()
        out: dict[str, object] = dict(totals)
        out["monthly_growth"] = monthly.growth
        out["monthly_growth_percentage"] = monthly.percentage
        for metric in GROWTH_METRICS:
            growth = self.growth_for_period(start, metric)
            out[f"{metric}_growth"] = growth.growth
            out[f"{metric}_growth_percentage"] = growth.percentage
        return out


@dataclass
class ImportSummary:
    counts: dict[str, int] = field(default_factory=dict)
    months_regenerated: int = 0


class ExportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def export(self) -> dict[str, object]:
        s = self.session
        data = ExportData(
            accounts=[
                ExportAccount(
                    id=a.id,
                    legacy_id=a.legacy_id,
                    name=a.name,
                    bank=a.bank,
                    category_id=a.category_id,
                    owner=a.owner,
                    kind=a.kind,
                    created_at=a.created_at,
                    notes=a.notes,
                )
                for a in s.scalars(select(Account).order_by(Account.id))
            ],
            balances=[
                ExportBalance(id=b.id, account_id=b.account_id, date=b.date, value=b.value)
                for b in s.scalars(select(Balance).order_by(Balance.id))
            ],
            categories=[
                ExportCategory(
                    id=c.id, name=c.name, kind=c.kind, icon=c.icon, color=c.color
                )
                for c in s.scalars(select(Category).order_by(Category.id))
            ],
            transactions=[
                ExportTransaction(
                    id=t.id,
                    legacy_id=t.legacy_id,
                    account_id=t.account_id,
                    date=t.date,
                    amount=t.amount,
                    description=t.description,
                )
                for t in s.scalars(select(AccountTransaction).order_by(AccountTransaction.id))
            ],
            snapshots=[
                ExportMonthlySnapshot(
                    month=m.month,
                    assets_total=m.assets_total,
                    liabilities_total=m.liabilities_total,
                    net_worth=m.net_worth,
                    created_at=m.created_at,
                )
                for m in s.scalars(select(MonthlySnapshot).order_by(MonthlySnapshot.month))
            ],
            category_snapshots=[
                ExportCategorySnapshot(
                    id=cs.id,
                    month=cs.month,
                    category_id=cs.category_id,
                    kind=cs.kind,
                    total=cs.total,
                )
                for cs in s.scalars(select(CategorySnapshot).order_by(CategorySnapshot.id))
            ],
            profile=[
                ExportProfile(
                    id=p.id,
                    user_name=p.user_name,
                    spouse_name=p.spouse_name,
                    user_color=p.user_color,
                    spouse_color=p.spouse_color,
                )
                for p in s.scalars(select(Profile).order_by(Profile.id))
            ],
        )
        document = DatabaseExport(
            version=EXPORT_VERSION,
            exported_at=datetime.now(timezone.utc),
            data=data,
        )
        return document.model_dump(mode="json", by_alias=True)

    @staticmethod
    def parse(payload: Any) -> DatabaseExport:
        if not isinstance(payload, dict):
            raise ImportFormatError("Invalid export file format")
        try:
            return DatabaseExport.model_validate(payload)
        except ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(part) for part in first.get("loc", ()))
            raise ImportFormatError(
                f"Invalid export file format: {where}: {first.get('msg')}"
            ) from exc

    def _clear_all(self) -> None:
        for model in (
            CategorySnapshot,
            MonthlySnapshot,
            AccountTransaction,
            Balance,
            Account,
            Category,
            Profile,
        ):
            self.session.execute(delete(model))

    def import_document(self, payload: Any) -> ImportSummary:
        """Replace every table with the contents of an export document."""
        document = self.parse(payload)
        data = document.data
        category_kinds = {c.id: c.kind for c in data.categories if c.id is not None}
        if len(data.profile) > 1:
            logger.warning(f"import: profile_rows={len(data.profile)} keeping first only")

        try:
            self._clear_all()
            self.session.expunge_all()
            self.session.add_all(
                Category(id=c.id, name=c.name, kind=c.kind, icon=c.icon, color=c.color)
                for c in data.categories
            )
            self.session.flush()
            self.session.add_all(
                Account(
                    id=a.id,
                    legacy_id=a.legacy_id,
                    name=a.name,
                    bank=a.bank,
                    category_id=a.category_id,
                    owner=a.owner,
                    kind=category_kinds.get(a.category_id, a.kind),
                    notes=a.notes,
                    created_at=a.created_at or datetime.utcnow(),
                )
                for a in data.accounts
            )
            self.session.flush()
            self.session.add_all(
                Balance(id=b.id, account_id=b.account_id, date=b.date, value=b.value)
                for b in data.balances
            )
            self.session.add_all(
                AccountTransaction(
                    id=t.id,
                    legacy_id=t.legacy_id,
                    account_id=t.account_id,
                    date=t.date,
                    amount=t.amount,
                    description=t.description,
                )
                for t in data.transactions
            )
            self.session.add_all(
                MonthlySnapshot(
                    month=m.month,
                    assets_total=m.assets_total,
                    liabilities_total=m.liabilities_total,
                    net_worth=m.net_worth,
                    created_at=m.created_at or datetime.utcnow(),
                )
                for m in data.snapshots
            )
            self.session.add_all(
                CategorySnapshot(
                    id=cs.id,
                    month=cs.month,
                    category_id=cs.category_id,
                    kind=cs.kind,
                    total=cs.total,
                )
                for cs in data.category_snapshots
            )
            self.session.add_all(
                Profile(
                    id=p.id,
                    user_name=p.user_name,
                    spouse_name=p.spouse_name,
                    user_color=p.user_color,
                    spouse_color=p.spouse_color,
                )
                for p in data.profile[:1]
            )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ImportFormatError(
                f"Export data is inconsistent: {exc.orig}"
            ) from exc
        except Exception:
            self.session.rollback()
            raise

        summary = ImportSummary(
            counts={
                "accounts": len(data.accounts),
                "balances": len(data.balances),
                "categories": len(data.categories),
                "transactions": len(data.transactions),
                "snapshots": len(data.snapshots),
                "category_snapshots": len(data.category_snapshots),
                "profile": min(len(data.profile), 1),
            }
        )
        logger.info(f"import_committed: version={document.version} counts={summary.counts}")
        summary.months_regenerated = regenerate_all_snapshots(self.session)
        return summary
