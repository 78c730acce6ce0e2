"""Error taxonomy shared by every storage provider and the backend client."""


class StorageProviderError(Exception):
    """Exception raised for errors in the storage providers.

    Attributes:
        provider_type -- the type of provider that raised the error
        message -- explanation of the error
        original_error -- the original exception that was raised (if any)
    """

    recoverable = False

    def __init__(self, provider_type: str, message: str, original_error=None):
        self.provider_type = provider_type
        self.message = message
        self.original_error = original_error
        super().__init__(f"{provider_type} provider error: {message}")


class RecoverableError(StorageProviderError):
    """Transient failure (timeout, rate limit, 5xx). The same call may be retried."""

    recoverable = True


class FatalError(StorageProviderError):
    """Permanent failure. Retrying needs external remediation first."""


class UnauthenticatedError(StorageProviderError):
    """No valid session or scope. Raised before any network call."""


class InvalidArgumentError(StorageProviderError):
    """An entry or path does not match this client's provider/account binding."""


class DecodeError(InvalidArgumentError):
    """An encoded FileEntry string is malformed or incomplete."""

    def __init__(self, message: str, original_error=None):
        super().__init__("entry", message, original_error=original_error)


class TransferCancelledError(StorageProviderError):
    """An in-flight upload or download was cancelled by the caller."""


class InternalStateError(StorageProviderError):
    """An operation was invoked before the client finished initializing."""
