"""
Error types shared by the mock servers.

Each error carries the HTTP status it maps to; the servers turn them into
plain-text responses.
"""


class GRCMockError(Exception):
    """Base error for the mock servers."""
    status_code = 500


class UnknownTableError(GRCMockError):
    status_code = 400

    def __init__(self, table: str):
        super().__init__(f"Unknown table: {table}")
        self.table = table


class RecordNotFoundError(GRCMockError):
    status_code = 404

    def __init__(self, table: str, record_id: str):
        super().__init__("Item not found")
        self.table = table
        self.record_id = record_id


class InvalidBodyError(GRCMockError):
    status_code = 400

    def __init__(self, message: str = "Invalid request body"):
        super().__init__(message)


class FieldTypeError(GRCMockError):
    """A stored field did not hold the expected type."""
    status_code = 500

    def __init__(self, field: str, expected: str, actual: object):
        super().__init__(
            f"Field '{field}' expected {expected}, got {type(actual).__name__}"
        )
        self.field = field
