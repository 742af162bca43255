"""Custom exceptions for DocVault."""


class DocVaultError(Exception):
    """Base exception for DocVault."""

    status_code = 500


class InvalidArgumentError(DocVaultError):
    """Exception raised for malformed sizes, metadata or paths."""

    status_code = 400


class NotFoundError(DocVaultError):
    """Exception raised when an upload, folder, document or object is unknown."""

    status_code = 404


class ConflictError(DocVaultError):
    """Exception raised on offset mismatch or an unresolvable unique-constraint race."""

    status_code = 409


class PayloadTooLargeError(DocVaultError):
    """Exception raised when a chunk or declared length exceeds the allowed size."""

    status_code = 413


class StorageError(DocVaultError):
    """Exception raised when object storage operations fail."""

    pass
