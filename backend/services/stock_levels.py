"""Stock query helpers. Pure functions over a loaded Product, no I/O."""

from decimal import Decimal

from db.product import Product


def _d(x) -> Decimal:
    return Decimal(x or 0)


def needs_restock(product: Product, threshold: Decimal = Decimal("1.0")) -> bool:
    return _d(product.current_stock) <= _d(product.reorder_point) * Decimal(threshold)


def needs_urgent_restock(product: Product) -> bool:
    """Oversold, empty, or at half the reorder point or below."""
    stock = _d(product.current_stock)
    return stock <= 0 or stock <= _d(product.reorder_point) * Decimal("0.5")


def is_oversold(product: Product) -> bool:
    return _d(product.current_stock) < 0


def backorder_quantity(product: Product) -> Decimal:
    return abs(min(Decimal("0"), _d(product.current_stock)))


def available_stock(product: Product) -> Decimal:
    # never negative, for display
    return max(Decimal("0"), _d(product.current_stock) - _d(product.reserved_stock))


def container_stock_total(product: Product) -> Decimal:
    if not product.tracks_containers:
        return Decimal("0")
    sealed = Decimal(product.full_containers or 0) * _d(product.container_capacity)
    opened = sum((_d(c.remaining) for c in product.containers or [] if c.remaining > 0), Decimal("0"))
    return sealed + opened
