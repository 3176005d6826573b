from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt
from passlib.hash import bcrypt
from datetime import datetime, timedelta, UTC
import logging

from config import Config
from models import AnonymousUser, AuthenticatedUser, SessionUser, MANAGER_LEVEL, USER_LEVEL

logger = logging.getLogger(__name__)


class LoginRequired(Exception):
    """Raised by protected routes when the session carries no user; answered with a redirect to /login."""


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against its stored hash. Malformed hashes never match."""
    try:
        return bcrypt.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def level_for_role(participant_role) -> str:
    """Map a participant's role flag to the session authorization level."""
    return MANAGER_LEVEL if participant_role == "admin" else USER_LEVEL


def create_session_token(user: AuthenticatedUser) -> str:
    """Create the signed session cookie value for a logged-in user."""
    to_encode = {
        "sub": str(user.id),
        "username": user.username,
        "level": user.level,
        "participant_id": user.participant_id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "ver": user.session_version,
    }
    expire = datetime.now(UTC) + timedelta(minutes=Config.SESSION_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, Config.SECRET_KEY, algorithm=Config.ALGORITHM)


def decode_session_token(token: str) -> SessionUser:
    """Turn a cookie value back into a session user; anything invalid is anonymous."""
    try:
        payload = jwt.decode(token, Config.SECRET_KEY, algorithms=[Config.ALGORITHM])
        return AuthenticatedUser(
            id=int(payload["sub"]),
            username=payload["username"],
            level=payload["level"],
            participant_id=payload.get("participant_id"),
            first_name=payload.get("first_name"),
            last_name=payload.get("last_name"),
            session_version=int(payload.get("ver", 0)),
        )
    except (JWTError, KeyError, TypeError, ValueError) as e:
        logger.info(f"Discarding invalid session cookie: {e}")
        return AnonymousUser()


def get_session_user(request: Request) -> SessionUser:
    """Retrieve the user attached to the request's session cookie."""
    token = request.cookies.get(Config.SESSION_COOKIE)
    if not token:
        return AnonymousUser()
    user = decode_session_token(token)
    if user.is_authenticated and request.app.state.users.session_version(user.id) != user.session_version:
        # logged out since, or the account is gone
        logger.info(f"Refusing ended session for user {user.id}")
        return AnonymousUser()
    return user


def require_login(user: SessionUser = Depends(get_session_user)) -> AuthenticatedUser:
    if not isinstance(user, AuthenticatedUser):
        raise LoginRequired()
    return user


def require_manager(user: AuthenticatedUser = Depends(require_login)) -> AuthenticatedUser:
    if not user.is_manager:
        raise HTTPException(status_code=403, detail="Managers only.")
    return user
