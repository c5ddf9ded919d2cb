# discount_engine/utils/get_user.py
from fastapi import Header, HTTPException, Request
from jose import jwt, JWTError

from discount_engine.core.config import JWT_SECRET, JWT_ALGORITHM
from discount_engine.schemas.auth_schemas import CurrentUser


async def get_current_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> CurrentUser:
    # Support either header
    raw_token = token
    if not raw_token and authorization and authorization.startswith("Bearer "):
        raw_token = authorization.split("Bearer ")[1]

    if not raw_token:
        raise HTTPException(status_code=401, detail="Missing access token")

    try:
        payload = jwt.decode(raw_token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    username = payload.get("sub")
    role = payload.get("role")
    if not username or not role:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Access token required")

    user = CurrentUser(username=username, role=role)
    request.state.user = user
    return user
