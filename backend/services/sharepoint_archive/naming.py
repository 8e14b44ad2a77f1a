"""
Invoice Archive Hub - Artifact Naming

Derives a stable base filename ``{YYYYMMDD}_{Issuer}_{amount}`` from
extracted invoice data. Every helper here is pure and never raises: bad
dates fall back to today (UTC), bad amounts to ``0.00`` or the stripped
input, and a missing issuer to ``UNKNOWN``.
"""

import re
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

UNKNOWN_ISSUER = "UNKNOWN"

# Leading run of Latin letters, accented variants included (× and ÷ excluded)
_LEADING_LETTERS = re.compile(r"^([A-Za-zÀ-ÖØ-öø-ɏ]{2,})")
_WHITESPACE = re.compile(r"\s")
_NOT_AMOUNT_CHAR = re.compile(r"[^0-9.]")
_EXTENSION = re.compile(r"\.[^.]+$")

_PARTY_NAME_KEYS = ("name", "company", "fullName", "full_name")


def _utc_yyyymmdd(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y%m%d")


def yyyymmdd(value: Any) -> str:
    """Normalize a date-ish value to ``YYYYMMDD`` in UTC, defaulting to today."""
    try:
        if isinstance(value, datetime):
            return _utc_yyyymmdd(value)
        if isinstance(value, date):
            return value.strftime("%Y%m%d")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # epoch milliseconds
            return _utc_yyyymmdd(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
        text = str(value or "").strip()
        if text:
            return _utc_yyyymmdd(date_parser.parse(text))
    except (ValueError, OverflowError, OSError):
        pass
    return datetime.now(timezone.utc).strftime("%Y%m%d")


def _normalize_separators(text: str) -> str:
    # A comma is decimal unless a dot follows it, or several commas group thousands
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if text.count(",") == 1:
        return text.replace(",", ".")
    return text.replace(",", "")


def fmt_amount(value: Any) -> str:
    """Format an amount with two decimals: ``"1,234.5"`` -> ``"1234.50"``."""
    if value is None or isinstance(value, bool):
        return "0.00"
    if isinstance(value, (int, float)):
        value = format(value, "f")
    stripped = _NOT_AMOUNT_CHAR.sub("", _normalize_separators(str(value)))
    if not stripped:
        return "0.00"
    try:
        amount = Decimal(stripped)
    except InvalidOperation:
        return stripped
    if not amount.is_finite():
        return stripped
    # Default context holds 28 digits; invoice text can carry more
    with localcontext() as ctx:
        ctx.prec = len(stripped) + 4
        try:
            return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        except InvalidOperation:
            return stripped


def first_company_token(value: Any) -> str:
    """
    Reduce a company name to one token.

    "Acme Corp" -> "Acme"; "MicrosoftIrelandOperationsLimited" stays whole;
    without whitespace the leading letter run is used, else the input.
    """
    text = str(value or "").strip()
    if not text:
        return ""
    ws = _WHITESPACE.search(text)
    if ws:
        return text[:ws.start()]
    match = _LEADING_LETTERS.match(text)
    return match.group(1) if match else text


def _party_name(party: Any) -> Optional[str]:
    if not isinstance(party, dict):
        return None
    for key in _PARTY_NAME_KEYS:
        if party.get(key):
            return party[key]
    return None


def pick_issuer(data: Dict[str, Any]) -> Any:
    """First available of issuer name, buyer name, raw issuer, raw buyer."""
    issuer = data.get("issuer")
    buyer = data.get("buyer")
    for candidate in (
        _party_name(issuer),
        _party_name(buyer),
        None if isinstance(issuer, dict) else issuer,
        None if isinstance(buyer, dict) else buyer,
    ):
        if candidate:
            return candidate
    return UNKNOWN_ISSUER


def fallback_base_name(filename: Optional[str]) -> str:
    """Filename without its last extension, or ``doc_<epoch ms>`` when empty."""
    stem = _EXTENSION.sub("", filename or "")
    if stem:
        return stem
    return f"doc_{int(datetime.now(timezone.utc).timestamp() * 1000)}"


def derive_base_name(data: Optional[Dict[str, Any]], fallback: str) -> str:
    """
    Build ``{date}_{issuerToken}_{amount}`` from extraction data.

    Returns ``fallback`` unchanged when ``data`` is absent or empty.
    """
    if not data or not isinstance(data, dict):
        return fallback
    date_str = yyyymmdd(data.get("invoice_date") or "")
    issuer = first_company_token(pick_issuer(data)) or UNKNOWN_ISSUER
    amount = fmt_amount(data.get("total_amount") or "0")
    return f"{date_str}_{issuer}_{amount}"
