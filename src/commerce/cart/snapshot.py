"""Cart snapshot builder.

Turns client-side cart lines into an immutable, priced snapshot. Prices and
availability are always re-read from the stock store; nothing the client
sends about price or stock is trusted. The builder never writes.
"""

from dataclasses import dataclass
from decimal import Decimal

from commerce.cart.pricing import PricingPolicy, get_pricing_policy, money
from commerce.errors import InvalidCartError, OutOfStockAtCreationError, UnknownProductError
from commerce.inventory import get_stock_store
from commerce.inventory.store.port import StockStore


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class SnapshotLine:
    product_id: str
    sku: str
    title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "line_total": float(self.line_total),
        }


@dataclass(frozen=True)
class CartSnapshot:
    lines: tuple[SnapshotLine, ...]
    subtotal: Decimal
    shipping_cost: Decimal
    tax_total: Decimal
    discount_total: Decimal
    grand_total: Decimal
    currency: str


def _merge(lines) -> list[CartLine]:
    merged: dict[str, int] = {}
    for line in lines:
        merged[str(line.product_id)] = merged.get(str(line.product_id), 0) + line.quantity
    return [CartLine(product_id, quantity) for product_id, quantity in merged.items()]


def build_snapshot(lines, store: StockStore | None = None, policy: PricingPolicy | None = None) -> CartSnapshot:
    """Price a cart against current catalog data.

    Raises InvalidCartError for an empty cart, bad quantities and unknown or
    inactive products (all problems are reported together), and
    OutOfStockAtCreationError when a tracked product cannot cover a line.
    """
    store = store or get_stock_store()
    policy = policy or get_pricing_policy()
    lines = list(lines)

    if not lines:
        raise InvalidCartError([{"product_id": None, "reason": "cart is empty"}])

    problems = [
        {"product_id": line.product_id, "reason": "quantity must be at least 1"}
        for line in lines
        if not isinstance(line.quantity, int) or line.quantity < 1
    ]
    if problems:
        raise InvalidCartError(problems)

    products = []
    for line in _merge(lines):
        try:
            product = store.get_product(line.product_id)
        except UnknownProductError:
            problems.append({"product_id": line.product_id, "reason": "product no longer exists"})
            continue
        if not product.is_active:
            problems.append({"product_id": line.product_id, "reason": "product is no longer available"})
        elif product.currency != policy.currency:
            problems.append({"product_id": line.product_id, "reason": f"product is priced in {product.currency}"})
        else:
            products.append((line, product))
    if problems:
        raise InvalidCartError(problems)

    snapshot_lines = []
    for line, product in products:
        if product.track_inventory and not product.allow_backorder and product.stock_quantity < line.quantity:
            raise OutOfStockAtCreationError(product.product_id, line.quantity, max(product.stock_quantity, 0))
        unit_price = money(product.unit_price)
        snapshot_lines.append(
            SnapshotLine(
                product_id=product.product_id,
                sku=product.sku,
                title=product.title,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=money(unit_price * line.quantity),
            )
        )

    subtotal = money(sum((line.line_total for line in snapshot_lines), start=money(0)))
    shipping = policy.shipping_for(subtotal)
    tax = policy.tax_for(subtotal, shipping)
    discount = money(0)

    return CartSnapshot(
        lines=tuple(snapshot_lines),
        subtotal=subtotal,
        shipping_cost=shipping,
        tax_total=tax,
        discount_total=discount,
        grand_total=money(subtotal + shipping + tax - discount),
        currency=policy.currency,
    )
