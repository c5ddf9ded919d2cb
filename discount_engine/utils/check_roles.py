# discount_engine/utils/check_roles.py
import logging
from functools import wraps
from typing import Callable, Iterable

from fastapi import HTTPException

logger = logging.getLogger(__name__)

ADMIN = "admin"
MANAGER = "manager"


def require_role(roles: Iterable[str]):
    """
    Route decorator for operator-only endpoints. The route must declare
    `_user=Depends(get_current_user)`; the decorator only reads its role.
    """
    allowed = frozenset(r.lower() for r in roles)

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise HTTPException(status_code=401, detail="User not authenticated")
            if _user.role.lower() not in allowed:
                logger.warning(
                    "Denied %s to %s with role %s", func.__name__, _user.username, _user.role
                )
                raise HTTPException(status_code=403, detail="Permission denied")
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
