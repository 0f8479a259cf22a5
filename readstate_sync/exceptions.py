"""
Reading-state sync exception classes
"""


class ReadingSyncError(Exception):
    """Base exception for reading-state synchronization"""

    def __init__(self, detail: str = "Reading state sync failed"):
        self.detail = detail
        super().__init__(self.detail)


class ParseError(ReadingSyncError):
    """Raised when a stored timestamp cannot be parsed"""

    def __init__(self, value: str):
        self.value = value
        super().__init__(detail=f"Malformed timestamp: {value!r}")


class NotFound(ReadingSyncError):
    """Raised when a book has no progress row"""

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(detail=f"No progress record for book {book_id}")


class StoreUnavailable(ReadingSyncError):
    """Raised when the vendor database is locked or unreachable"""

    def __init__(self, detail: str = "Vendor database unavailable"):
        super().__init__(detail=detail)


class TranslationError(ReadingSyncError):
    """Raised when a percent cannot be translated into a chapter token"""

    def __init__(self, book_id: str, detail: str = "chapter data unavailable"):
        self.book_id = book_id
        super().__init__(detail=f"Cannot translate progress for book {book_id}: {detail}")


class HostStoreError(ReadingSyncError):
    """Raised when the host metadata store cannot be read or written"""

    def __init__(self, detail: str = "Host metadata store operation failed"):
        super().__init__(detail=detail)
