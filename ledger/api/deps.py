"""
FastAPI dependencies (DB session, authentication, per-request key scope)
"""
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from ledger.application.encryption import EncryptionService, RequestKeyScope
from ledger.infrastructure.db.session import get_db as _get_db
from ledger.infrastructure.db.models import User


# Re-export get_db for convenience
get_db = _get_db

CLIENT_KEY_HEADER = "X-Client-Key"


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the session cookie

    Raises:
        HTTPException(401): not logged in / unknown user
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def get_encryption_service(db: Session = Depends(get_db)) -> EncryptionService:
    return EncryptionService(db)


def parse_client_key(value: str | None) -> bytes:
    """
    Decode a hex client key (64 hex chars)

    Raises:
        HTTPException(400): missing or malformed
    """
    if not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Client key required")
    try:
        key = bytes.fromhex(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Client key must be hex")
    if len(key) != 32:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Client key must be 32 bytes")
    return key


def get_client_key(x_client_key: str | None = Header(default=None, alias=CLIENT_KEY_HEADER)) -> bytes:
    return parse_client_key(x_client_key)


def get_key_scope(
    user: User = Depends(get_current_user),
    client_key: bytes = Depends(get_client_key),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    """
    Request-scoped DEK holder; wiped when the request ends, on every path

    Usage:
        @router.get("/budgets/{budget_id}")
        def get_budget(scope: RequestKeyScope = Depends(get_key_scope)):
            scope.dek
    """
    scope = RequestKeyScope(encryption, user.id, client_key)
    try:
        yield scope
    finally:
        scope.close()


def get_optional_key_scope(
    user: User = Depends(get_current_user),
    encryption: EncryptionService = Depends(get_encryption_service),
    x_client_key: str | None = Header(default=None, alias=CLIENT_KEY_HEADER),
):
    """
    Like get_key_scope, for routes that only touch amounts in some cases
    (e.g. creating a budget from a template). None without the header.
    """
    if x_client_key is None:
        yield None
        return
    scope = RequestKeyScope(encryption, user.id, parse_client_key(x_client_key))
    try:
        yield scope
    finally:
        scope.close()
