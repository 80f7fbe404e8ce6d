import re
from typing import Dict, List, Optional

_TAX_RATE_RE = re.compile(r"(\d+(?:\.\d+)?)")


def _num(value, default: float = 0.0) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_tax_rate(tax: Optional[str]) -> float:
    """First number in a tax label, e.g. ``"GST 10%"`` -> 10.0."""
    if not tax:
        return 0.0
    match = _TAX_RATE_RE.search(str(tax))
    return float(match.group(1)) if match else 0.0


def build_item(item: Dict) -> Dict:
    """Normalize one line item and compute its amount.

    The amount is quantity * unit price plus the tax percentage found in the
    tax label. An explicit ``amount`` on the item takes precedence.
    """
    quantity = _num(item.get("quantity"), 1.0)
    unit_price = _num(item.get("unit_price"))
    tax_rate = parse_tax_rate(item.get("tax"))

    amount = quantity * unit_price
    if tax_rate > 0:
        amount += amount * tax_rate / 100

    if item.get("amount") is not None and not (isinstance(item["amount"], str) and not item["amount"].strip()):
        amount = _num(item["amount"])

    return {
        "item_name": item.get("item_name"),
        "description": item.get("description") or None,
        "quantity": quantity,
        "unit": item.get("unit") or "Pcs",
        "unit_price": unit_price,
        "tax": item.get("tax") or None,
        "tax_rate": tax_rate,
        "file_path": item.get("file_path") or None,
        "amount": round(amount, 2),
    }


def calculate_totals(items: List[Dict], discount=0, discount_type: str = "%") -> Dict[str, float]:
    sub_total = sum(_num(item.get("amount")) for item in items)

    if discount_type == "%":
        discount_amount = sub_total * _num(discount) / 100
    else:
        discount_amount = _num(discount)

    # tax is already inside the item amounts
    tax_amount = 0.0
    return {
        "sub_total": round(sub_total, 2),
        "discount_amount": round(discount_amount, 2),
        "tax_amount": tax_amount,
        "total": round(sub_total - discount_amount, 2),
    }
