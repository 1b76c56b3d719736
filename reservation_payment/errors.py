class SettlementError(Exception):
    """Business-rule failure that maps onto an HTTP error response."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SettlementError):
    pass


class NotFound(SettlementError):
    status_code = 404


class InvalidState(SettlementError):
    pass


class AlreadySettled(SettlementError):
    pass


class AmountExceedsBalance(SettlementError):
    def __init__(self, max_amount: int):
        super().__init__(f"Payment amount cannot exceed the remaining balance of {max_amount}")
        self.max_amount = max_amount


class GatewayError(SettlementError):
    pass


class InternalError(SettlementError):
    status_code = 500
