from fastapi import HTTPException, status


class InvalidInputError(HTTPException):
    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Invalid or missing authentication"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "You are not allowed to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConsentRequiredError(HTTPException):
    def __init__(self, version: str | None = None):
        detail = "Please complete the consent flow before accessing this content"
        if version:
            detail = f"{detail} (document version {version})"
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class AccountSuspendedError(HTTPException):
    def __init__(self, violation_count: int):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access suspended after {violation_count} content protection violations",
        )


class InsufficientReadTimeError(HTTPException):
    def __init__(self, minimum_seconds: int):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"You must spend at least {minimum_seconds} seconds reading the agreement",
        )


class IncompleteReadError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="You must scroll to the bottom of the agreement",
        )


class BiometricRequiredError(HTTPException):
    def __init__(self, detail: str = "Biometric verification is required to sign the agreement"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class DocumentChangedError(HTTPException):
    def __init__(self, current_version: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"The agreement changed while you were reading it; please re-read version {current_version}",
        )


class DocumentNotFoundError(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail="No consent document has been published")


class FingerprintNotFoundError(HTTPException):
    def __init__(self, content_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"No fingerprint recorded for content {content_id}",
        )


class WatermarkEmbedError(HTTPException):
    def __init__(self, reason: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Media could not be watermarked: {reason}",
        )


class StorageError(HTTPException):
    def __init__(self, operation: str = "request"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not complete {operation}; please try again later",
        )


class AccountServiceError(HTTPException):
    def __init__(self, action: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Account service did not confirm {action}; please try again later",
        )
