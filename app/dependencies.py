from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth import authenticate
from app.database import get_db
from app.models import User

# auto_error=False so a missing header goes through our 401 envelope
bearer = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the Authorization: Bearer header to a user.

    Raises Unauthenticated (401) for a missing, unknown, revoked or
    expired token.
    """
    token = credentials.credentials if credentials else None
    return authenticate(db, token)
