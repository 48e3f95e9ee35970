from .checkout_view import PosCheckoutView

__all__ = ["PosCheckoutView"]
