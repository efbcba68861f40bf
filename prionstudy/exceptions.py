"""Error taxonomy shared by the consent service, the admin panel and the backup jobs."""
from typing import Optional


class PrionStudyError(Exception):
    status_code = 500

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(PrionStudyError):
    status_code = 400


class AuthError(PrionStudyError):
    status_code = 401


class ForbiddenError(PrionStudyError):
    status_code = 403


class NotFoundError(PrionStudyError):
    status_code = 404


class ConflictError(PrionStudyError):
    status_code = 409


class ServerError(PrionStudyError):
    status_code = 500


class ConfigurationError(PrionStudyError):
    """Dropbox (or another optional integration) is missing its secrets."""
    status_code = 503


class TokenRefreshError(PrionStudyError):
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, details: dict = None):
        self.status = status
        super().__init__(message, details)


class RemoteAPIError(PrionStudyError):
    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, summary: str = "", details: dict = None):
        self.status = status
        self.summary = summary
        super().__init__(message, details)

    @property
    def is_not_found(self) -> bool:
        return self.status == 409 and "not_found" in self.summary
