class PriceMatrixError(Exception):
    """Base error for the price matrix package."""


class PriceStreamError(PriceMatrixError):
    def __init__(self, message, status_code=502, details=None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}
