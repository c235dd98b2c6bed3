# Filename: sharebox/errors.py
from fastapi import status


class ShareBoxError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal error"
    headers = None

    def __init__(self, detail: str = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class ValidationError(ShareBoxError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid request"


class UploadTooLarge(ValidationError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    detail = "Uploaded file exceeds max_upload_size_mb"


class NotFound(ShareBoxError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "File not found"


class VersionNotFound(NotFound):
    detail = "Version not found"


class Forbidden(ShareBoxError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Not allowed"


class PasswordRequired(ShareBoxError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Password required"


class IncorrectPassword(ShareBoxError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Incorrect password"


class ConcurrentUpdate(ShareBoxError):
    status_code = status.HTTP_409_CONFLICT
    detail = "File was modified concurrently, try again"


class UpstreamFailure(ShareBoxError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Storage backend unavailable, try again"
