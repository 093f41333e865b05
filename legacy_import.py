"""Import of the pre-database format.

Older versions kept everything as two JSON blobs: a list of accounts, each
carrying its category name and an embedded balance history, and an optional
list of transactions pointing at those accounts by string id. The import is
idempotent: rows are matched by legacy id and by (account, date) for
balances, so re-running it only adds what is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    DEFAULT_CATEGORIES,
    Account,
    AccountKind,
    AccountTransaction,
    Balance,
    Category,
)
from schemas import LegacyPayload
from services import CategoryService, ImportFormatError
from snapshots import regenerate_all_snapshots

logger = logging.getLogger(__name__)

LIABILITY_NAMES = {
    str(row["name"]).lower()
    for row in DEFAULT_CATEGORIES
    if row["kind"] == AccountKind.liability
}


def legacy_kind_for(category_name: str) -> AccountKind:
    if category_name.strip().lower() in LIABILITY_NAMES:
        return AccountKind.liability
    return AccountKind.asset


@dataclass
class LegacyImportResult:
    categories_created: int = 0
    accounts_created: int = 0
    accounts_skipped: int = 0
    balances_created: int = 0
    transactions_created: int = 0
    warnings: list[str] = field(default_factory=list)


class LegacyImportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _category_for(self, name: str, result: LegacyImportResult) -> Category:
        existing = CategoryService(self.session).find_by_name(name)
        if existing:
            return existing
        category = Category(name=name.strip(), kind=legacy_kind_for(name))
        self.session.add(category)
        self.session.flush()
        result.categories_created += 1
        return category

    def import_payload(self, payload: Any) -> LegacyImportResult:
        try:
            data = LegacyPayload.model_validate(payload)
        except ValidationError as exc:
            raise ImportFormatError(f"Invalid legacy data: {exc.errors()[0]['msg']}") from exc

        result = LegacyImportResult()
        if not data.accounts and not data.transactions:
            logger.info("legacy_import: no legacy data found")
            return result

        account_ids: dict[str, int] = {}
        try:
            for legacy in data.accounts:
                account = self.session.scalar(
                    select(Account).where(Account.legacy_id == legacy.id)
                )
                if account:
                    result.accounts_skipped += 1
                else:
                    category = self._category_for(legacy.category, result)
                    account = Account(
                        legacy_id=legacy.id,
                        name=legacy.name,
                        bank=legacy.bank,
                        category_id=category.id,
                        owner=legacy.owner,
                        kind=category.kind,
                    )
                    self.session.add(account)
                    self.session.flush()
                    result.accounts_created += 1
                account_ids[legacy.id] = account.id

                for entry in legacy.balances:
                    exists = self.session.scalar(
                        select(Balance.id).where(
                            Balance.account_id == account.id, Balance.date == entry.date
                        )
                    )
                    if exists:
                        continue
                    self.session.add(
                        Balance(account_id=account.id, date=entry.date, value=entry.value)
                    )
                    self.session.flush()
                    result.balances_created += 1

            for legacy_txn in data.transactions:
                exists = self.session.scalar(
                    select(AccountTransaction.id).where(
                        AccountTransaction.legacy_id == legacy_txn.id
                    )
                )
                if exists:
                    continue
                account_id = account_ids.get(legacy_txn.account_id)
                if account_id is None:
                    account_id = self.session.scalar(
                        select(Account.id).where(Account.legacy_id == legacy_txn.account_id)
                    )
                if account_id is None:
                    result.warnings.append(
                        f"Account not found for transaction {legacy_txn.id}"
                    )
                    continue
                self.session.add(
                    AccountTransaction(
                        legacy_id=legacy_txn.id,
                        account_id=account_id,
                        date=legacy_txn.date,
                        amount=legacy_txn.amount,
                        description=legacy_txn.description,
                    )
                )
                result.transactions_created += 1

            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        for warning in result.warnings:
            logger.warning(f"legacy_import: {warning}")
        logger.info(
            f"legacy_import: accounts={result.accounts_created} "
            f"balances={result.balances_created} transactions={result.transactions_created}"
        )
        regenerate_all_snapshots(self.session)
        return result
