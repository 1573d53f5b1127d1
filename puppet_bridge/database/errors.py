"""Storage failures raised by the database handles and puppet records."""


class StorageError(RuntimeError):
    """A statement failed or a stored row could not be decoded."""
