"""
Storefront error taxonomy.

Service code raises these; the handlers registered in main.py render every
one of them as ``{"error": message}`` with the matching status code.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(StorefrontError):
    status_code = 401


class ForbiddenError(StorefrontError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class InsufficientStockError(StorefrontError):
    status_code = 400

    def __init__(self, product_id: str, requested: int, variant_id: str = None):
        super().__init__("Insufficient stock")
        self.product_id = product_id
        self.variant_id = variant_id
        self.requested = requested


class RateLimitedError(StorefrontError):
    status_code = 429


class PaymentError(StorefrontError):
    status_code = 502


class OrderStateError(StorefrontError):
    status_code = 400
