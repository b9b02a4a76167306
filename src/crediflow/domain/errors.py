class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, message: str, product_id: str | None = None, shop_id: str | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.shop_id = shop_id


class CustomerNotFoundError(NotFoundError):
    def __init__(self, message: str, customer_id: str | None = None):
        super().__init__(message)
        self.customer_id = customer_id


class ShopNotFoundError(NotFoundError):
    def __init__(self, message: str, shop_id: str | None = None):
        super().__init__(message)
        self.shop_id = shop_id


class InsufficientStockError(AppError):
    def __init__(self, message: str, product_id: str | None = None, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.product_id = product_id
        self.available = available
        self.requested = requested


class PersistenceError(AppError):
    pass


class ConcurrencyError(AppError):
    """An operation gave up after the records it depends on kept changing."""
