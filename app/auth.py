import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import commit
from app.errors import InvalidCredentials, Unauthenticated, ValidationError
from app.models import ApiToken, User

logger = logging.getLogger(__name__)
settings = get_settings()

# Argon2 hasher with secure defaults
# Argon2id is recommended variant (combines Argon2i and Argon2d)
ph = PasswordHasher()

# Verified against when the email is unknown so both failure paths cost the same
_DUMMY_HASH = ph.hash("not-a-real-password")


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.

    Returns hash string that includes algorithm parameters and salt.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored hash.

    Uses constant-time comparison internally to prevent timing attacks.
    Returns False for any error to avoid information leakage.
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_token() -> str:
    """
    Generate cryptographically secure bearer token.

    Uses 32 bytes (256 bits) of randomness, hex encoded = 64 characters.
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Digest stored in place of the raw token. Lookups match on this value.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _lock_user(db: Session, user_id: int) -> User:
    # Serializes token issue/revoke for one user. SQLite ignores FOR UPDATE.
    return db.query(User).filter(User.id == user_id).with_for_update().one()


def create_user(
    db: Session,
    name: str,
    email: str,
    password: str,
    is_admin: bool = False,
) -> User:
    """
    Provision a user account. Registration is not exposed over HTTP,
    this is used by the startup seed and by tests.
    """
    user = User(
        name=name,
        email=email.lower(),
        password_hash=hash_password(password),
        is_admin=is_admin,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(errors={"email": ["The email has already been taken."]})

    db.refresh(user)
    return user


def issue_token(db: Session, user: User, name: str = "api-token") -> str:
    """
    Mint a new token for user and persist its digest.

    Returns the raw token. It is not recoverable later.
    Existing tokens of the user stay valid.
    """
    token = generate_token()
    expires_at = None
    if settings.token_expire_hours is not None:
        expires_at = datetime.utcnow() + timedelta(hours=settings.token_expire_hours)

    _lock_user(db, user.id)
    db.add(ApiToken(
        user_id=user.id,
        token_hash=hash_token(token),
        name=name,
        expires_at=expires_at,
    ))
    commit(db, "issue a token")

    return token


def login(db: Session, email: str, password: str) -> Tuple[str, User]:
    """
    Check credentials and issue a new token.

    Unknown email and wrong password raise the same InvalidCredentials,
    and a dummy hash is verified for unknown emails so response timing
    does not reveal which accounts exist.
    """
    user = db.query(User).filter(User.email == email.lower()).first()

    if user is None:
        verify_password(password, _DUMMY_HASH)
        logger.info("Login failed: unknown email")
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        logger.info("Login failed for user %s: bad password", user.id)
        raise InvalidCredentials()

    token = issue_token(db, user)
    logger.info("User %s logged in", user.id)
    return token, user


def get_user_from_token(db: Session, token: str) -> Optional[User]:
    """
    Resolve a bearer token to its user.

    Returns None if:
    - Token doesn't exist (never issued or revoked by logout)
    - Token has expired (expired rows are left in place, see cleanup_expired_tokens)
    """
    record = db.query(ApiToken).filter(ApiToken.token_hash == hash_token(token)).first()
    if record is None:
        return None

    if record.expires_at is not None and record.expires_at.replace(tzinfo=None) <= datetime.utcnow():
        return None

    return record.user


def authenticate(db: Session, token: Optional[str]) -> User:
    if not token:
        raise Unauthenticated()

    user = get_user_from_token(db, token)
    if user is None:
        raise Unauthenticated()
    return user


def revoke_user_tokens(db: Session, user_id: int) -> int:
    """
    Delete all tokens for a user ("log out everywhere").

    Returns number of tokens deleted. Zero is not an error.
    """
    _lock_user(db, user_id)
    result = db.query(ApiToken).filter(
        ApiToken.user_id == user_id
    ).delete(synchronize_session=False)
    commit(db, "log out")

    logger.info("Revoked %d token(s) for user %s", result, user_id)
    return result


def cleanup_expired_tokens(db: Session) -> int:
    """
    Remove expired tokens from database.

    Called on startup. Returns number of tokens cleaned up.
    """
    result = db.query(ApiToken).filter(
        ApiToken.expires_at.isnot(None),
        ApiToken.expires_at <= datetime.utcnow()
    ).delete(synchronize_session=False)

    commit(db, "clean up expired tokens")
    return result


def seed_default_admin(db: Session, config: Settings) -> Optional[User]:
    """
    Create the configured default admin if it does not exist yet.
    """
    if not config.default_admin_email or not config.default_admin_password:
        return None

    email = config.default_admin_email.lower()
    admin = db.query(User).filter(User.email == email).first()
    if admin is not None:
        return admin

    admin = create_user(
        db,
        name=config.default_admin_name,
        email=email,
        password=config.default_admin_password,
        is_admin=True,
    )
    logger.info("Seeded default admin user %s", admin.id)
    return admin
