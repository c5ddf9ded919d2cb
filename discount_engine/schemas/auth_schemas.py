# discount_engine/schemas/auth_schemas.py
from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Operator identity taken from a verified access token."""
    username: str
    role: str
