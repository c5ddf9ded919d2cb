import os
from dotenv import load_dotenv

load_dotenv()

# -----------------------
# Database Config
# -----------------------
DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()

if DB_TYPE == "postgres":
    DATABASE_URL = os.getenv("DATABASE_URL")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL is required for Postgres setup")
elif DB_TYPE == "sqlite":
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./pricing.db")
else:
    raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")

# -----------------------
# JWT Config (tokens are issued by the auth service, only verified here)
# -----------------------
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError("JWT_SECRET environment variable must be set")

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# -----------------------
# Pricing Config
# -----------------------
PRICE_DECIMAL_PLACES = int(os.getenv("PRICE_DECIMAL_PLACES", "2"))
MAX_PERCENTAGE_DISCOUNT = int(os.getenv("MAX_PERCENTAGE_DISCOUNT", "100"))
DEFAULT_RULE_PRIORITY = int(os.getenv("DEFAULT_RULE_PRIORITY", "100"))

# -----------------------
# Listing Config
# -----------------------
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
