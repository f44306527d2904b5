"""
Bureau Export Engine - Source Row Models

Typed snapshot of one tenant/tenancy/payment combination as supplied by the
tenancy platform. Rows are validated here, at the assembly boundary, before
they reach the validator or the encoder.
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class UserSnapshot(_Snapshot):
    surname: Optional[str] = None
    forename: Optional[str] = None


class ProfileSnapshot(_Snapshot):
    middle_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    address_line3: Optional[str] = None
    address_line4: Optional[str] = None
    postcode: Optional[str] = None

    gone_away: bool = False
    arrangement_to_pay: bool = False
    query: bool = False
    deceased: bool = False
    third_party_paid: bool = False
    eviction_flag: bool = False
    eviction_date: Optional[date] = None
    opt_out_reporting: bool = False

    @field_validator(
        "gone_away", "arrangement_to_pay", "query", "deceased",
        "third_party_paid", "eviction_flag", "opt_out_reporting",
        mode="before",
    )
    @classmethod
    def _null_flag_is_false(cls, value):
        return False if value is None else value


class TenancySnapshot(_Snapshot):
    tenancy_id: str
    tenancy_ref: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    monthly_rent: Optional[Decimal] = None
    outstanding_balance: Decimal = Decimal("0")
    rent_frequency: Optional[str] = "monthly"

    @field_validator("outstanding_balance", mode="before")
    @classmethod
    def _null_balance_is_zero(cls, value):
        return Decimal("0") if value is None or value == "" else value

    @field_validator("monthly_rent", mode="before")
    @classmethod
    def _blank_rent_is_missing(cls, value):
        return None if value == "" else value


class PaymentSnapshot(_Snapshot):
    due_date: date
    paid_date: Optional[date] = None
    status: str = "unknown"
    verification_status: str = "unverified"
    verification_method: Optional[str] = None
    verified_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.verification_status == "verified"


class SourceRow(_Snapshot):
    """Everything the export engine needs to know about one reportable line."""
    tenant_id: str
    property_id: str
    landlord_id: Optional[str] = None
    user: UserSnapshot
    tenancy: TenancySnapshot
    profile: Optional[ProfileSnapshot] = None
    payment: PaymentSnapshot

    @property
    def opted_out(self) -> bool:
        return bool(self.profile and self.profile.opt_out_reporting)
