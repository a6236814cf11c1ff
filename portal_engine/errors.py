"""
Error kinds shared by the store, the HTTP layer and the admin client.

Every error carries a human readable ``message`` and optional
``details``; the HTTP layer renders them as ``{"error", "details"}``.
"""


class PortalError(Exception):
    status_code = 500

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {'error': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class NotFoundError(PortalError):
    """Unknown table, schema or row."""
    status_code = 404


class UnauthorizedError(PortalError):
    status_code = 401


class ForbiddenError(PortalError):
    """Caller is not the admin identity."""
    status_code = 403


class ValidationError(PortalError):
    """Form constraint violation; ``details`` maps field name to message."""
    status_code = 400


class UploadError(PortalError):
    """An upload failed.  Field-scoped and non-fatal on the client side."""
    status_code = 400


class StoreError(PortalError):
    """Data-access failure inside the generic table store."""
    status_code = 500

    def __init__(self, table: str, message: str):
        super().__init__(f"Database error on table '{table}'", details=message)
        self.table = table
        self.underlying = message
