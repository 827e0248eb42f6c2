
class BrainError(Exception):
    """Request-time failure the caller can fix and retry."""
    status_code = 400


class BrainValidationError(BrainError):
    status_code = 400


class UnsupportedFileTypeError(BrainValidationError):
    pass


class FileTooLargeError(BrainError):
    status_code = 413


class DocumentLimitError(BrainValidationError):
    pass


class DuplicateDocumentError(BrainError):
    status_code = 409


class EmptyQueryError(BrainValidationError):
    pass


class DocumentNotFoundError(BrainError):
    status_code = 404


class NotAuthorizedError(BrainError):
    status_code = 403
