"""
Cart Manager
Pure cart arithmetic. A cart is a list of CartItem in insertion order; every
update returns a new list and never exposes a quantity <= 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from menu_pipeline.models import CartItem, MenuItem

Cart = List[CartItem]


def update_cart(cart: Cart, item: MenuItem, delta: int) -> Cart:
    """
    Apply ``delta`` to the entry for ``item.id``.

    delta > 0 adds or increments (and refreshes the stored item),
    delta < 0 decrements and drops the entry at <= 0,
    delta == 0 and decrementing an absent entry are no-ops.
    """
    if delta == 0:
        return list(cart)

    updated: Cart = []
    found = False
    for entry in cart:
        if entry.item.id != item.id:
            updated.append(entry)
            continue

        found = True
        quantity = entry.quantity + delta
        if quantity > 0:
            updated.append(CartItem(item=item if delta > 0 else entry.item, quantity=quantity))

    if not found and delta > 0:
        updated.append(CartItem(item=item, quantity=delta))
    return updated


def cart_quantity(cart: Cart, item_id: str) -> int:
    for entry in cart:
        if entry.item.id == item_id:
            return entry.quantity
    return 0


def cart_subtotal(cart: Cart) -> float:
    """Sum of price * quantity in the menu's original currency."""
    return sum(entry.item.price * entry.quantity for entry in cart)


@dataclass(frozen=True)
class CartTotals:
    subtotal: float
    service_charge: float
    tax: float
    grand_total: float
    converted_total: float
    item_count: int


def cart_totals(cart: Cart, tax_rate: float = 0.0, service_rate: float = 0.0,
                exchange_rate: Optional[float] = 1.0) -> CartTotals:
    """
    Order totals for the summary view.

    Rates are percentages. Service is charged on the subtotal; tax is charged
    on subtotal plus service.
    """
    subtotal = cart_subtotal(cart)
    service_charge = subtotal * (service_rate or 0.0) / 100.0
    tax = (subtotal + service_charge) * (tax_rate or 0.0) / 100.0
    grand_total = subtotal + service_charge + tax
    return CartTotals(
        subtotal=subtotal,
        service_charge=service_charge,
        tax=tax,
        grand_total=grand_total,
        converted_total=grand_total * (exchange_rate or 1.0),
        item_count=sum(entry.quantity for entry in cart),
    )
