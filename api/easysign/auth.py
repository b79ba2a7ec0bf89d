import secrets
from typing import Optional
from fastapi import Header, HTTPException, Query, status
from pydantic import BaseModel

from .config import ADMIN_ACCESS_TOKEN


class AccessContext(BaseModel):
    role: str


def require_admin_access(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    token: Optional[str] = Query(default=None),
) -> AccessContext:
    # editor endpoints only; signing links authenticate with their own token
    candidate = x_access_token or token
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing access token")
    if not ADMIN_ACCESS_TOKEN or not secrets.compare_digest(candidate, ADMIN_ACCESS_TOKEN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid access token")
    return AccessContext(role="admin")
