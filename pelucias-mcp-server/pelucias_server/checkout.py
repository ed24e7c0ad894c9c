"""Order message and WhatsApp checkout link."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from urllib.parse import quote

from .models import CartItem

WHATSAPP_BASE_URL = "https://wa.me"
DEFAULT_WHATSAPP_NUMBER = "5586994173176"

ORDER_GREETING = "Olá! Gostaria de fazer um pedido:"

# Characters left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def format_brl(value: Decimal) -> str:
    """Format an amount as Brazilian Real, e.g. R$ 1.234,56."""
    amount = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    digits = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {digits}"


def build_order_message(items: Iterable[CartItem]) -> str:
    """
    Compose the order summary sent to the store.

    Olá! Gostaria de fazer um pedido:

    1x Pelúcia Stitch - R$ 89,90
    2x Pelúcia Angel - R$ 131,80

    Total: R$ 221,70
    """
    lines = [ORDER_GREETING, ""]
    total = Decimal("0")
    for item in items:
        subtotal = item.product.price * item.quantity
        total += subtotal
        lines.append(f"{item.quantity}x {item.product.name} - {format_brl(subtotal)}")
    lines.append("")
    lines.append(f"Total: {format_brl(total)}")
    return "\n".join(lines)


def build_checkout_url(message: str, phone_number: str, base_url: str = WHATSAPP_BASE_URL) -> str:
    """
    Build the WhatsApp deep link carrying the order message.

    Args:
        message: Text produced by build_order_message
        phone_number: Country code + area code + number, digits only (e.g. 5511987654321)
        base_url: Messaging domain
    """
    return f"{base_url.rstrip('/')}/{phone_number}?text={quote(message, safe=_URI_COMPONENT_SAFE)}"
