import os
import sys
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

# .env lives next to the project root in dev, next to the executable when frozen
if getattr(sys, "frozen", False):
    BASE_DIR = Path(sys.executable).parent
else:
    BASE_DIR = Path(__file__).resolve().parents[2]

load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------
# Database
# ---------------------
DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "loan_manager")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASS = os.getenv("DB_PASS", "postgres")

# empty / "None" ports show up when the .env line is left blank
if not DB_PORT or str(DB_PORT).lower() == "none":
    DB_PORT = "5432"

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg2://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

# ---------------------
# Auth / HTTP
# ---------------------
JWT_SECRET = os.getenv("JWT_SECRET", "xxx")
JWT_ALGO = os.getenv("JWT_ALGO", "HS256")

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = _env_bool("DEBUG")

# ---------------------
# Business rules
# ---------------------
# repayments may exceed the balance by this much to absorb rounding
OVERPAYMENT_TOLERANCE = Decimal(os.getenv("OVERPAYMENT_TOLERANCE", "1"))

# a default inside this window blocks new applications
DEFAULT_LOCKOUT_DAYS = int(os.getenv("DEFAULT_LOCKOUT_DAYS", "90"))

# used until an admin creates the settings row
DEFAULT_INTEREST_RATE = Decimal("5.0")
DEFAULT_LOAN_TERM_OPTIONS = [6, 12, 24, 36]
DEFAULT_MAX_LOAN_AMOUNT = Decimal("10000000")
DEFAULT_MIN_LOAN_AMOUNT = Decimal("10000")
DEFAULT_CURRENCY = "NGN"
DEFAULT_GRACE_PERIOD_DAYS = 7
DEFAULT_LATE_PAYMENT_PENALTY = Decimal("2.5")
