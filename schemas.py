import datetime as dt
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    field_validator,
)
from pydantic.alias_generators import to_camel

from models import AccountKind, OwnerType

EXPORT_VERSION = 3


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    kind: AccountKind
    icon: Optional[str] = Field(default=None, max_length=60)
    color: Optional[str] = Field(default=None, max_length=20)


class AccountIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    bank: str = Field(default="", max_length=120)
    category: str = Field(..., min_length=1, max_length=100)
    owner: OwnerType = OwnerType.me
    initial_balance: float = 0.0
    notes: Optional[str] = None
    as_of: Optional[dt.date] = None


class AccountUpdateIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    bank: str = Field(default="", max_length=120)
    category: str = Field(..., min_length=1, max_length=100)
    owner: OwnerType = OwnerType.me
    notes: Optional[str] = None


class BalanceIn(BaseModel):
    value: float
    date: Optional[dt.date] = None


class ProfileIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_name: Optional[str] = Field(default=None, max_length=80)
    spouse_name: Optional[str] = Field(default=None, max_length=80)
    user_color: Optional[str] = Field(default=None, max_length=20)
    spouse_color: Optional[str] = Field(default=None, max_length=20)


class _ExportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExportAccount(_ExportModel):
    id: Optional[int] = None
    legacy_id: Optional[str] = None
    name: str
    bank: str = ""
    category_id: int
    owner: OwnerType = OwnerType.me
    kind: AccountKind = Field(alias="type")
    created_at: Optional[datetime] = None
    notes: Optional[str] = None


class ExportBalance(_ExportModel):
    id: Optional[int] = None
    account_id: int
    date: dt.date
    value: float


class ExportCategory(_ExportModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    kind: AccountKind = Field(alias="type")
    icon: Optional[str] = None
    color: Optional[str] = None


class ExportTransaction(_ExportModel):
    id: Optional[int] = None
    legacy_id: Optional[str] = None
    account_id: int
    date: dt.date
    amount: float
    description: str = ""


class ExportMonthlySnapshot(_ExportModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    assets_total: float
    liabilities_total: float
    net_worth: float
    created_at: Optional[datetime] = None


class ExportCategorySnapshot(_ExportModel):
    id: Optional[int] = None
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    category_id: int
    kind: AccountKind = Field(alias="type")
    total: float


class ExportProfile(_ExportModel):
    id: Optional[int] = None
    user_name: Optional[str] = None
    spouse_name: Optional[str] = None
    user_color: Optional[str] = None
    spouse_color: Optional[str] = None


class ExportData(_ExportModel):
    accounts: list[ExportAccount] = Field(default_factory=list)
    balances: list[ExportBalance] = Field(default_factory=list)
    categories: list[ExportCategory] = Field(default_factory=list)
    transactions: list[ExportTransaction] = Field(default_factory=list)
    snapshots: list[ExportMonthlySnapshot] = Field(default_factory=list)
    category_snapshots: list[ExportCategorySnapshot] = Field(default_factory=list)
    profile: list[ExportProfile] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _missing_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class DatabaseExport(_ExportModel):
    version: Union[StrictInt, StrictFloat]
    exported_at: Optional[datetime] = None
    data: ExportData


class LegacyBalance(BaseModel):
    date: dt.date
    value: float


class LegacyAccount(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    bank: str = ""
    category: str = Field(..., min_length=1)
    owner: OwnerType = OwnerType.me
    balances: list[LegacyBalance] = Field(default_factory=list)


class LegacyTransaction(_ExportModel):
    id: str = Field(..., min_length=1)
    account_id: str
    date: dt.date
    amount: float
    description: str = ""


class LegacyPayload(BaseModel):
    accounts: list[LegacyAccount] = Field(default_factory=list)
    transactions: list[LegacyTransaction] = Field(default_factory=list)
