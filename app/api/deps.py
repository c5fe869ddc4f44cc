"""API dependencies for dependency injection."""

from collections.abc import Callable, Generator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session

from app.config import get_settings
from app.db.session import engine, get_session
from app.models.user import User

settings = get_settings()
security = HTTPBearer(auto_error=False)


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


DBSession = Annotated[Session, Depends(get_db_session)]


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


def resolve_user(session: Session, token: str | None) -> User:
    """Verify a bearer token and load its user."""
    if not token:
        raise _credentials_exception()

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        user_id = UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise _credentials_exception()

    user = session.get(User, user_id)
    if user is None:
        raise _credentials_exception()

    return user


def get_current_user(
    session: DBSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Get current authenticated user from JWT token."""
    return resolve_user(session, credentials.credentials if credentials else None)


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_stream_user(
    session: DBSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    access_token: str | None = Query(default=None, description="Token for EventSource clients"),
) -> User:
    """Like get_current_user, also accepting the token as a query parameter.

    Browser EventSource connections cannot set an Authorization header.
    """
    token = credentials.credentials if credentials else access_token
    return resolve_user(session, token)


StreamUser = Annotated[User, Depends(get_stream_user)]


def get_admin_user(current_user: CurrentUser) -> User:
    """Require an administrator."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return current_user


AdminUser = Annotated[User, Depends(get_admin_user)]


def get_session_factory() -> Callable[[], Session]:
    """Session factory for long-lived handlers that open their own sessions."""
    return lambda: Session(engine)


SessionFactory = Annotated[Callable[[], Session], Depends(get_session_factory)]
