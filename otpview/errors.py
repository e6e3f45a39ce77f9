class OtpViewError(Exception):
    """Base class for errors raised by otpview."""


class IndexOutOfRange(OtpViewError, IndexError):
    def __init__(self, index: int, size: int):
        super().__init__(f"Index {index} is out of range (store holds {size} elements)")
        self.index = index
        self.size = size


class ComputationError(OtpViewError, ValueError):
    """Raised when a code cannot be computed from a record's secret material."""


class VaultError(OtpViewError, ValueError):
    """Raised when a vault file cannot be read, decrypted or written."""
