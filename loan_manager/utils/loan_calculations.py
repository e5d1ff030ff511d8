import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP


def money(x) -> Decimal:
    """Always return 2-decimal Decimal with HALF_UP rounding."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def whole_units(x) -> Decimal:
    """Round to whole currency units (repayments are taken in whole units)."""
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def compute_amortization(
        principal: Decimal,
        annual_rate_percent: Decimal,
        term_months: int,
):
    """
    FIXED-PAYMENT AMORTIZATION:
      r = rate% / 100 / 12
      monthly_payment = P * r / (1 - (1 + r)^-N)
      total_repayable = monthly_payment * N

    A zero rate degenerates to monthly_payment = P / N.

    Returns:
      monthly_payment, total_repayable (both money-rounded)

    Example:
      principal=100000, rate=12, term=12 => 8884.88, 106618.55
    """
    months = int(term_months)
    if months <= 0:
        raise ValueError("term_months must be > 0")

    principal = Decimal(str(principal))
    r = Decimal(str(annual_rate_percent)) / Decimal("100") / Decimal("12")

    if r == 0:
        monthly = principal / months
    else:
        monthly = (principal * r) / (1 - (1 + r) ** -months)

    # total is derived from the unrounded payment so the two stay consistent
    return money(monthly), money(monthly * months)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_reference(prefix: str) -> str:
    """Unique human-readable reference, e.g. LOAN-20260101120000-9F2C1A7B."""
    stamp = utcnow().strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8].upper()}"
