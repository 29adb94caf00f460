from __future__ import annotations


class StockpickError(Exception):
    """Base class for every error raised by the order/picking core."""


class EmptyCartError(StockpickError):
    def __init__(self, message: str = "cart is empty") -> None:
        super().__init__(message)


class InvalidQuantityError(StockpickError):
    def __init__(self, qty: object) -> None:
        super().__init__(f"quantity cannot be negative: {qty}")
        self.qty = qty


class NotEditableError(StockpickError):
    pass


class InvalidStateError(StockpickError):
    pass


class OrderNotFoundError(StockpickError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"order not found: {order_id}")
        self.order_id = order_id


class PersistenceError(StockpickError):
    """Local storage read/write failure. Callers log it and carry on."""


class RemoteOperationError(StockpickError):
    """Any document store failure. Shown to the user as is."""


class StockUnavailableWarning(UserWarning):
    """Requested quantity exceeds what the catalog says is in stock.

    Advisory only: stock figures can be stale while other orders are
    being picked, so the cart write still happens.
    """

    def __init__(self, product_id: str, requested: int, available: int, package_mode: bool) -> None:
        unit = "packages" if package_mode else "units"
        super().__init__(f"{product_id}: requested {requested} {unit}, only {available} {unit} in stock")
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.package_mode = package_mode
