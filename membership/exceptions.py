"""Exception types raised by the membership services"""

from typing import Optional


class EmbyvaultError(Exception):
    """Base class for service errors"""
    pass


class EmbyAPIError(EmbyvaultError):
    """Raised when a call to the Emby server fails"""

    def __init__(self, operation: str, detail: str, status_code: Optional[int] = None):
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{operation} failed: {detail}")


class NotFoundError(EmbyvaultError):
    """Raised when a local record does not exist"""
    pass


class InvalidCronError(EmbyvaultError):
    """Raised when a cron expression cannot be parsed"""
    pass
