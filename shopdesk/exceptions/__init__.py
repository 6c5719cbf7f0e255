"""Custom exceptions for the shopdesk application."""


class ShopError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="Ocurrió un error interno", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(ShopError):
    """Raised when a requested mutation is rejected; state is left unchanged."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InsufficientStockError(ValidationError):
    """Raised when a cart quantity exceeds the last observed stock."""
    def __init__(self, product_name, requested, available):
        message = f"Stock insuficiente para {product_name}. Disponible: {available}"
        super().__init__(message, payload={'requested': requested, 'available': available})
        self.product_name = product_name
        self.requested = requested
        self.available = available


class EmptyCartError(ShopError):
    """Raised when checkout is attempted on an empty cart."""
    def __init__(self, message='El carrito está vacío'):
        super().__init__(message, 400)


class NotAuthenticatedError(ShopError):
    """Raised when no operator is logged in."""
    def __init__(self, message='Usuario no autenticado'):
        super().__init__(message, 401)


class NotFoundError(ShopError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Recurso no encontrado", payload=None):
        super().__init__(message, 404, payload)


class StockConflictError(ShopError):
    """
    Raised when a conditional stock decrement finds less stock than requested.

    The whole write was rolled back; callers may refresh and retry.
    """
    def __init__(self, product_id, product_name, requested, available):
        message = (
            f'El stock de "{product_name}" cambió. '
            f'Solicitado: {requested}, disponible: {available}'
        )
        super().__init__(message, 409, payload={
            'product_id': product_id,
            'requested': requested,
            'available': available,
        })
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PersistenceError(ShopError):
    """Raised when the database rejects a write; nothing was committed."""
    def __init__(self, message='No se pudo guardar en la base de datos', payload=None):
        super().__init__(message, 503, payload)
