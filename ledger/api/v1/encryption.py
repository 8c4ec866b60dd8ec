"""
Encryption API endpoints (vault code / PIN, recovery key)

The client derives its key from the PIN with the salt and iteration count
returned by /salt, and sends it hex-encoded in the X-Client-Key header.
"""
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_client_key, get_current_user, get_db, get_encryption_service, parse_client_key
from ledger.application.encryption import EncryptionService
from ledger.application.rekey import EncryptionRekeyService
from ledger.errors import IncorrectPin
from ledger.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/encryption", tags=["encryption"])


# === Request / response models ===

class SaltResponse(BaseModel):
    salt: str
    kdf_iterations: int
    has_recovery_key: bool


class VaultStatusResponse(BaseModel):
    vault_code_configured: bool


class RecoveryKeyResponse(BaseModel):
    recovery_key: str


class RecoverRequest(BaseModel):
    recovery_key: str
    new_client_key: str  # hex


class RekeyRequest(BaseModel):
    new_client_key: str  # hex


# === Endpoints ===

@router.get("/salt", response_model=SaltResponse)
def get_salt(
    user: User = Depends(get_current_user),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    """Salt and KDF iteration count (generated on first call)"""
    data = encryption.get_user_salt(user.id)
    return SaltResponse(**data)


@router.get("/vault-status", response_model=VaultStatusResponse)
def get_vault_status(
    user: User = Depends(get_current_user),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    return VaultStatusResponse(**encryption.get_vault_status(user.id))


@router.post("/validate-key", status_code=204)
def validate_key(
    user: User = Depends(get_current_user),
    client_key: bytes = Depends(get_client_key),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    """204 if the client key matches the stored key-check (stored on first call)"""
    if not encryption.verify_and_ensure_key_check(user.id, client_key):
        raise IncorrectPin()
    return Response(status_code=204)


@router.post("/setup-recovery", response_model=RecoveryKeyResponse)
def setup_recovery(
    user: User = Depends(get_current_user),
    client_key: bytes = Depends(get_client_key),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    """Create the recovery key; shown once"""
    formatted = encryption.create_recovery_key(user.id, client_key)
    return RecoveryKeyResponse(recovery_key=formatted)


@router.post("/regenerate-recovery", response_model=RecoveryKeyResponse)
def regenerate_recovery(
    user: User = Depends(get_current_user),
    client_key: bytes = Depends(get_client_key),
    encryption: EncryptionService = Depends(get_encryption_service),
):
    formatted = encryption.regenerate_recovery_key(user.id, client_key)
    return RecoveryKeyResponse(recovery_key=formatted)


@router.post("/recover", status_code=204)
def recover(
    req: RecoverRequest,
    user: User = Depends(get_current_user),
    encryption: EncryptionService = Depends(get_encryption_service),
    db: Session = Depends(get_db),
):
    """Forgotten PIN: re-encrypt everything under a new client key using the recovery key"""
    new_client_key = parse_client_key(req.new_client_key)
    rekey_service = EncryptionRekeyService(db, encryption)
    encryption.recover_with_key(
        user.id,
        req.recovery_key,
        new_client_key,
        lambda old_dek, new_dek: rekey_service.re_encrypt_all_user_data(user.id, old_dek, new_dek),
    )
    return Response(status_code=204)


@router.post("/rekey", status_code=204)
def rekey(
    req: RekeyRequest,
    user: User = Depends(get_current_user),
    client_key: bytes = Depends(get_client_key),
    encryption: EncryptionService = Depends(get_encryption_service),
    db: Session = Depends(get_db),
):
    """PIN change: current client key in the header, new one in the body"""
    new_client_key = parse_client_key(req.new_client_key)
    EncryptionRekeyService(db, encryption).rekey_user_data(user.id, client_key, new_client_key)
    return Response(status_code=204)
