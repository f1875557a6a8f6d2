import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth

from .database import get_db, init_firebase_app
from .domain.accounts.repository import AccountRepository
from .models import ProfessionalAccount, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer()


def verify_firebase_token(token: str) -> dict:
    """Verify a Firebase ID token (signature, audience, expiry) with the Admin SDK"""
    try:
        return firebase_auth.verify_id_token(token, app=init_firebase_app())
    except firebase_auth.CertificateFetchError as e:
        logger.error(f"❌ Could not fetch Firebase signing certificates: {e}")
        raise HTTPException(status_code=503, detail="Authentication temporarily unavailable") from e
    except (firebase_auth.InvalidIdTokenError, ValueError) as e:
        logger.warning(f"⚠️ Token verification failed: {type(e).__name__}: {e}")
        raise HTTPException(status_code=401, detail="Token verification failed") from e


async def get_current_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """Decoded token claims for the Bearer token on the request"""
    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")
    return verify_firebase_token(token)


async def get_current_uid(claims: dict = Depends(get_current_claims)) -> str:
    uid = claims.get("uid") or claims.get("sub") or claims.get("user_id")
    if not uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return uid


async def get_current_account(
    uid: str = Depends(get_current_uid),
    db=Depends(get_db),
) -> ProfessionalAccount:
    """Load the account document of the authenticated user"""
    account = AccountRepository(db).get(uid)
    if account is None:
        logger.warning(f"⚠️ No account document for uid {uid}")
        raise HTTPException(status_code=404, detail="User not found")
    return account


async def require_ceo(account: ProfessionalAccount = Depends(get_current_account)) -> ProfessionalAccount:
    if account.role != UserRole.CEO.value:
        logger.warning(f"🚫 Admin endpoint refused for {account.id} (role={account.role})")
        raise HTTPException(status_code=403, detail="Admin access required")
    return account
