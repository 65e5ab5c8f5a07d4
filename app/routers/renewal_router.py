from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app import renewals
from app.database import get_db
from app.dependencies import get_current_user
from app.models import User
from app.schemas import (
    Envelope, MessageResponse, RenewalCreate, RenewalOut, RenewalStatistics, RenewalUpdate,
)

router = APIRouter(prefix="/renewals", tags=["renewals"])


def _present_all(items) -> List[RenewalOut]:
    return [renewals.present(r) for r in items]


@router.get("", response_model=Envelope[List[RenewalOut]])
async def list_renewals(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    List renewals of every user.

    Only the caller's own renewals are listed when owner scoping is
    enabled and the caller is not an admin.
    """
    return Envelope(
        message="Renewals retrieved successfully",
        data=_present_all(renewals.list_renewals(db, user)),
    )


@router.post("", response_model=Envelope[RenewalOut], status_code=status.HTTP_201_CREATED)
async def create_renewal(
    payload: RenewalCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a renewal owned by the caller.

    Process:
    1. Validate input (done by Pydantic, all field errors reported together)
    2. Derive the initial status from end_date
    3. Insert renewal and return it

    Error cases:
    - 422: Validation failed, including end_date before start_date
    - 500: Database error
    """
    renewal = renewals.create_renewal(db, user, payload)
    return Envelope(message="Renewal created successfully", data=renewals.present(renewal))


# Fixed paths are registered before /{renewal_id}


@router.get("/statistics", response_model=Envelope[RenewalStatistics])
async def statistics(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Counts per derived status, total count and total cost (whole units,
    fraction dropped).
    """
    return Envelope(
        message="Renewal statistics retrieved successfully",
        data=renewals.statistics(db, user),
    )


@router.get("/status/{renewal_status}", response_model=Envelope[List[RenewalOut]])
async def renewals_by_status(
    renewal_status: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Renewals with the given status.

    Error cases:
    - 400: Status other than active, expired or cancelled
    """
    found = renewals.renewals_by_status(db, renewal_status, user)
    return Envelope(
        message=f"Renewals with status '{renewal_status}' retrieved successfully",
        data=_present_all(found),
    )


@router.get("/user", response_model=Envelope[List[RenewalOut]])
async def user_renewals(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return Envelope(
        message="Your renewals retrieved successfully",
        data=_present_all(renewals.list_user_renewals(db, user)),
    )


# renewal_id stays a string: ids that cannot exist answer 404, not 422


@router.get("/{renewal_id}", response_model=Envelope[RenewalOut])
async def get_renewal(
    renewal_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Fetch a single renewal.

    Error cases:
    - 404: No renewal with this id, or the id is not a valid id at all
    """
    renewal = renewals.get_renewal(db, renewal_id, user)
    return Envelope(message="Renewal retrieved successfully", data=renewals.present(renewal))


@router.api_route("/{renewal_id}", methods=["PUT", "PATCH"], response_model=Envelope[RenewalOut])
async def update_renewal(
    renewal_id: str,
    payload: RenewalUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Partial update for both PUT and PATCH.

    Process:
    1. Validate the supplied fields (done by Pydantic)
    2. Load renewal
    3. Check end_date >= start_date on the merged record
    4. Apply changes and return the renewal

    Fields left out of the body are unchanged.

    Error cases:
    - 404: Renewal not found
    - 422: Validation failed
    """
    renewal = renewals.update_renewal(db, renewal_id, payload, user)
    return Envelope(message="Renewal updated successfully", data=renewals.present(renewal))


@router.delete("/{renewal_id}", response_model=MessageResponse)
async def delete_renewal(
    renewal_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Permanently delete a renewal.

    Error cases:
    - 404: Renewal not found (also on a repeated delete)
    """
    renewals.delete_renewal(db, renewal_id, user)
    return MessageResponse(message="Renewal deleted successfully")
