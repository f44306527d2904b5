"""
Snapshot Sources

The tenancy platform supplies the rows to report. A snapshot source returns
every candidate SourceRow for a month: one per tenant per tenancy with a
payment due in that calendar month.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...models.db_models import (
    PropertyDB, RentPaymentDB, TenancyDB, TenancyTenantDB, TenantProfileDB, UserDB,
)
from ...models.source import (
    PaymentSnapshot, ProfileSnapshot, SourceRow, TenancySnapshot, UserSnapshot,
)
from .periods import in_month, parse_month

logger = logging.getLogger(__name__)

FREE_PLAN = "free"


def latest_per_tenancy(rows: Iterable[SourceRow]) -> List[SourceRow]:
    """
    One row per (tenancy, tenant) for the month.

    Weekly and fortnightly tenancies have several payments due in a month but
    are reported as a single account line; the payment due last wins. Rows
    keep the position of the tenancy's first payment.
    """
    latest: Dict[Tuple[str, str], SourceRow] = {}
    for row in rows:
        key = (row.tenancy.tenancy_id, row.tenant_id)
        current = latest.get(key)
        if current is None or row.payment.due_date >= current.payment.due_date:
            latest[key] = row
    return list(latest.values())


class SnapshotSource(ABC):
    @abstractmethod
    def fetch(self, month: str) -> List[SourceRow]:
        """Return one row per tenancy tenant with a payment due in month (YYYY-MM)."""


class StaticSnapshotSource(SnapshotSource):
    """Serves a fixed list of rows, filtered by due date and collapsed per tenancy."""

    def __init__(self, rows: Iterable[SourceRow]):
        self.rows = list(rows)

    def fetch(self, month: str) -> List[SourceRow]:
        parse_month(month)
        return latest_per_tenancy(
            row for row in self.rows if in_month(row.payment.due_date, month)
        )


class SqlSnapshotSource(SnapshotSource):
    """
    Assembles rows from the platform's tables.

    Eligibility:
    - payment due date within the month (latest one per tenancy tenant)
    - tenancy active, or ended with an outstanding balance
    - tenant on a paid plan (free plan tenants do not share data)
    """

    def __init__(self, db: Session):
        self.db = db

    def fetch(self, month: str) -> List[SourceRow]:
        first, last = parse_month(month)

        results = (
            self.db.query(RentPaymentDB, TenancyDB, UserDB, PropertyDB, TenantProfileDB)
            .join(TenancyDB, TenancyDB.id == RentPaymentDB.tenancy_id)
            .join(TenancyTenantDB, and_(
                TenancyTenantDB.tenancy_id == TenancyDB.id,
                TenancyTenantDB.tenant_id == RentPaymentDB.user_id,
            ))
            .join(UserDB, UserDB.id == RentPaymentDB.user_id)
            .join(PropertyDB, PropertyDB.id == TenancyDB.property_id)
            .outerjoin(TenantProfileDB, TenantProfileDB.user_id == UserDB.id)
            .filter(
                RentPaymentDB.due_date >= first,
                RentPaymentDB.due_date <= last,
                or_(
                    TenancyDB.status == "active",
                    and_(TenancyDB.status == "ended", TenancyDB.outstanding_balance > 0),
                ),
                UserDB.subscription_plan.isnot(None),
                UserDB.subscription_plan != FREE_PLAN,
            )
            .order_by(RentPaymentDB.due_date, TenancyDB.id, UserDB.id, RentPaymentDB.id)
            .all()
        )

        rows = latest_per_tenancy(self._build_row(*result) for result in results)
        logger.info("[Snapshot] %d candidate rows for %s", len(rows), month)
        return rows

    @staticmethod
    def _build_profile(profile: TenantProfileDB, prop: PropertyDB) -> ProfileSnapshot:
        # Fall back to the let property's address when the profile has none
        if profile is not None and profile.address_line1:
            address = [profile.address_line1, profile.address_line2,
                       profile.address_line3, profile.address_line4]
        else:
            address = [prop.address, prop.city, None, None]

        flags = {}
        if profile is not None:
            flags = dict(
                middle_name=profile.middle_name,
                date_of_birth=profile.date_of_birth,
                gone_away=profile.gone_away,
                arrangement_to_pay=profile.arrangement_to_pay,
                query=profile.query_flag,
                deceased=profile.deceased,
                third_party_paid=profile.third_party_paid,
                eviction_flag=profile.eviction_flag,
                eviction_date=profile.eviction_date,
                opt_out_reporting=profile.opt_out_reporting,
            )

        return ProfileSnapshot(
            address_line1=address[0],
            address_line2=address[1],
            address_line3=address[2],
            address_line4=address[3],
            postcode=(profile.postcode if profile is not None else None) or prop.postcode,
            **flags,
        )

    def _build_row(self, payment, tenancy, user, prop, profile) -> SourceRow:
        return SourceRow(
            tenant_id=user.id,
            property_id=str(prop.id),
            landlord_id=prop.landlord_id,
            user=UserSnapshot(surname=user.last_name, forename=user.first_name),
            tenancy=TenancySnapshot(
                tenancy_id=tenancy.id,
                tenancy_ref=tenancy.tenancy_ref,
                start_date=tenancy.start_date,
                end_date=tenancy.end_date,
                monthly_rent=tenancy.monthly_rent,
                outstanding_balance=tenancy.outstanding_balance,
                rent_frequency=tenancy.rent_frequency,
            ),
            profile=self._build_profile(profile, prop),
            payment=PaymentSnapshot(
                due_date=payment.due_date,
                paid_date=payment.paid_date,
                status=payment.status or "unknown",
                verification_status="verified" if payment.is_verified else "unverified",
                verification_method=payment.verification_method,
                verified_at=payment.verified_at,
            ),
        )
