class FreshFoldError(Exception):
    """Base class for errors the API layer turns into client responses."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class LaundromatNotFound(FreshFoldError):
    status_code = 404

    def __init__(self, laundromat_id: str):
        super().__init__("Laundromat not found")
        self.laundromat_id = laundromat_id


class PayoutAccountMissing(FreshFoldError):
    def __init__(self, laundromat_id: str):
        super().__init__(
            "This laundromat has not connected their Stripe account yet. Please try again later."
        )
        self.laundromat_id = laundromat_id


class PromoCodeInvalid(FreshFoldError):
    pass


class OrderNotFound(FreshFoldError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidStatusTransition(FreshFoldError):
    status_code = 409


class PaymentInitiationFailed(FreshFoldError):
    """The provider did not accept the charge; safe to retry with a new order."""

    status_code = 502

    def __init__(self, order_id: str, payment_id: str):
        super().__init__("Failed to create payment. Please try again.")
        self.order_id = order_id
        self.payment_id = payment_id
