"""
Renewal repository and status/statistics engine.

Every function takes the authenticated user explicitly. Status is derived
from end_date when records are read or queried; the stored value is only
authoritative for "cancelled".
"""
import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import and_, func
from sqlalchemy.orm import Query, Session

from app.config import get_settings
from app.database import commit
from app.errors import InvalidArgument, NotFound, ValidationError
from app.models import Renewal, RenewalStatus, User
from app.schemas import RenewalCreate, RenewalOut, RenewalStatistics, RenewalUpdate

logger = logging.getLogger(__name__)
settings = get_settings()

# expiring-soon is deliberately not selectable here
SELECTABLE_STATUSES = (
    RenewalStatus.ACTIVE,
    RenewalStatus.EXPIRED,
    RenewalStatus.CANCELLED,
)

# Largest value a BIGINT primary key can hold
MAX_ID = 2 ** 63 - 1
_ID_PATTERN = re.compile(r"[0-9]{1,19}")


def derive_status(
    stored_status: RenewalStatus,
    end_date: date,
    today: date,
    window_days: Optional[int] = None,
) -> RenewalStatus:
    """
    Lifecycle status of a renewal as of today.

    cancelled is sticky. Otherwise an end_date before today is expired,
    one within [today, today + window_days] is expiring-soon, and anything
    later is active.
    """
    if window_days is None:
        window_days = settings.expiring_soon_days

    if stored_status == RenewalStatus.CANCELLED:
        return RenewalStatus.CANCELLED
    if end_date < today:
        return RenewalStatus.EXPIRED
    if end_date <= today + timedelta(days=window_days):
        return RenewalStatus.EXPIRING_SOON
    return RenewalStatus.ACTIVE


def present(renewal: Renewal, today: Optional[date] = None) -> RenewalOut:
    """Serialize a renewal with its status derived as of today."""
    today = today or date.today()
    out = RenewalOut.model_validate(renewal)
    return out.model_copy(update={
        "status": derive_status(renewal.status, renewal.end_date, today),
    })


def _status_filter(status: RenewalStatus, today: date):
    """SQL equivalent of derive_status() for a single status."""
    horizon = today + timedelta(days=settings.expiring_soon_days)
    not_cancelled = Renewal.status != RenewalStatus.CANCELLED

    if status == RenewalStatus.CANCELLED:
        return Renewal.status == RenewalStatus.CANCELLED
    if status == RenewalStatus.EXPIRED:
        return and_(not_cancelled, Renewal.end_date < today)
    if status == RenewalStatus.EXPIRING_SOON:
        return and_(not_cancelled, Renewal.end_date >= today, Renewal.end_date <= horizon)
    return and_(not_cancelled, Renewal.end_date > horizon)


def _visible_to(db: Session, viewer: User) -> Query:
    query = db.query(Renewal)
    if settings.scope_renewals_to_owner and not viewer.is_admin:
        query = query.filter(Renewal.user_id == viewer.id)
    return query


def create_renewal(
    db: Session,
    owner: User,
    fields: RenewalCreate,
    today: Optional[date] = None,
) -> Renewal:
    """
    Persist a new renewal owned by owner.

    The stored status starts as the derived status at creation time.
    """
    today = today or date.today()
    renewal = Renewal(user_id=owner.id, **fields.model_dump())
    renewal.status = derive_status(RenewalStatus.ACTIVE, renewal.end_date, today)

    db.add(renewal)
    commit(db, "create the renewal")
    db.refresh(renewal)

    logger.info("User %s created renewal %s", owner.id, renewal.id)
    return renewal


def parse_renewal_id(renewal_id: Union[int, str]) -> int:
    """
    Turn a path id into a primary key.

    Anything that cannot be a stored id (not a positive integer, or
    beyond the 64-bit integer range) raises NotFound.
    """
    if isinstance(renewal_id, str):
        if not _ID_PATTERN.fullmatch(renewal_id):
            raise NotFound("Renewal not found")
        renewal_id = int(renewal_id)

    if not 1 <= renewal_id <= MAX_ID:
        raise NotFound("Renewal not found")
    return renewal_id


def get_renewal(db: Session, renewal_id: Union[int, str], viewer: User) -> Renewal:
    renewal_id = parse_renewal_id(renewal_id)
    renewal = _visible_to(db, viewer).filter(Renewal.id == renewal_id).first()
    if renewal is None:
        raise NotFound("Renewal not found")
    return renewal


def list_renewals(db: Session, viewer: User) -> List[Renewal]:
    """All renewals, regardless of owner unless owner scoping is enabled."""
    return _visible_to(db, viewer).order_by(Renewal.id).all()


def list_user_renewals(db: Session, owner: User) -> List[Renewal]:
    return (
        db.query(Renewal)
        .filter(Renewal.user_id == owner.id)
        .order_by(Renewal.id)
        .all()
    )


def update_renewal(
    db: Session,
    renewal_id: Union[int, str],
    changes: RenewalUpdate,
    viewer: User,
) -> Renewal:
    """
    Apply a partial update.

    Omitted fields keep their values. The merged record must still have
    end_date >= start_date, otherwise nothing is written.
    """
    renewal = get_renewal(db, renewal_id, viewer)
    values = changes.changes()

    start_date = values.get("start_date", renewal.start_date)
    end_date = values.get("end_date", renewal.end_date)
    if end_date < start_date:
        raise ValidationError(errors={
            "end_date": ["The end date must be a date after or equal to start date."],
        })

    for field, value in values.items():
        setattr(renewal, field, value)

    commit(db, "update the renewal")
    db.refresh(renewal)

    logger.info("Renewal %s updated (%s)", renewal.id, ", ".join(sorted(values)) or "no changes")
    return renewal


def delete_renewal(db: Session, renewal_id: Union[int, str], viewer: User) -> None:
    renewal = get_renewal(db, renewal_id, viewer)
    deleted_id = renewal.id
    db.delete(renewal)
    commit(db, "delete the renewal")
    logger.info("Renewal %s deleted", deleted_id)


def renewals_by_status(
    db: Session,
    status: str,
    viewer: User,
    today: Optional[date] = None,
) -> List[Renewal]:
    """
    Renewals whose derived status matches.

    Only active, expired and cancelled are accepted. The status is checked
    before any query runs.
    """
    allowed = [s.value for s in SELECTABLE_STATUSES]
    if status not in allowed:
        raise InvalidArgument(f"Invalid status. Allowed values: {', '.join(allowed)}")

    today = today or date.today()
    return (
        _visible_to(db, viewer)
        .filter(_status_filter(RenewalStatus(status), today))
        .order_by(Renewal.id)
        .all()
    )


def statistics(db: Session, viewer: User, today: Optional[date] = None) -> RenewalStatistics:
    """
    Aggregate counts by derived status plus total cost.

    total_cost is truncated to an integer: 15.99 counts as 15.
    """
    today = today or date.today()
    query = _visible_to(db, viewer)

    def count(status: RenewalStatus) -> int:
        return query.filter(_status_filter(status, today)).count()

    total_cost = query.with_entities(func.coalesce(func.sum(Renewal.cost), 0)).scalar()
    # SQLite sums as float; normalise to cents before dropping the fraction
    total_cost = Decimal(str(total_cost)).quantize(Decimal("0.01"))

    return RenewalStatistics(
        active_count=count(RenewalStatus.ACTIVE),
        expiring_soon_count=count(RenewalStatus.EXPIRING_SOON),
        expired_count=count(RenewalStatus.EXPIRED),
        cancelled_count=count(RenewalStatus.CANCELLED),
        total_count=query.count(),
        total_cost=int(total_cost),
    )
