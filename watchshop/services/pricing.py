"""
Order totals for a cart.

Pure functions, no database access. All amounts are Decimal rounded to
cents; the total is assembled from the already rounded components so that

    total_amount == subtotal - discount_amount + shipping_amount + tax_amount

holds exactly for every order written to the ledger.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple, Union

from watchshop import config
from watchshop.utils.enums import ShippingMethod

CENT = Decimal("0.01")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    # str() first so floats arriving from JSON do not drag binary noise along
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def shipping_fee(method: Union[ShippingMethod, str]) -> Decimal:
    """Flat fee for a shipping method; ValueError for unknown methods."""
    key = ShippingMethod(method).value
    return to_money(config.SHIPPING_RATES[key])


def calculate_totals(
    lines: Iterable[Tuple[Number, int]],
    shipping_method: Union[ShippingMethod, str] = ShippingMethod.STANDARD,
    discount_rate: Number = 0,
    tax_rate: Number = config.TAX_RATE,
    free_shipping_threshold: Number = config.FREE_SHIPPING_THRESHOLD,
) -> OrderTotals:
    """
    Computes subtotal, discount, shipping, tax and total.

    lines: (unit_price, quantity) pairs.
    discount_rate: already validated promo rate, 0 when none.
    Free shipping applies strictly above the threshold and is checked on the
    pre-discount subtotal.
    """
    subtotal = to_money(sum((Decimal(str(price)) * int(qty) for price, qty in lines), Decimal("0")))
    discount_amount = to_money(subtotal * Decimal(str(discount_rate)))

    if subtotal > Decimal(str(free_shipping_threshold)):
        shipping_amount = to_money(0)
    else:
        shipping_amount = shipping_fee(shipping_method)

    tax_amount = to_money((subtotal - discount_amount) * Decimal(str(tax_rate)))
    total_amount = subtotal - discount_amount + shipping_amount + tax_amount

    return OrderTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        shipping_amount=shipping_amount,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )
