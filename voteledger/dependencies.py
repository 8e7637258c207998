from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from .config import Settings
from .ledger import VoteLedger
from .security import ADMIN_ROLE, decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_ledger(request: Request) -> VoteLedger:
    return request.app.state.ledger


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated.", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = decode_access_token(credentials.credentials, settings)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.", headers={"WWW-Authenticate": "Bearer"})
    if payload.get("role") != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin privileges required.")
    return payload.get("sub", "")
