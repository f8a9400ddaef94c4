class InvalidArgument(ValueError):
    """Caller-fixable input problem; nothing was written."""


class NotFound(ValueError):
    pass


class StorageError(RuntimeError):
    """The database rejected or failed the operation; it was rolled back."""
