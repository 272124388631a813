class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConversationNotFoundError(ServiceError):
    def __init__(self, message="Conversation not found."):
        super().__init__(message, status_code=404)


class BusinessRuleError(ServiceError):
    """For violations of specific business rules (e.g., messaging yourself)."""

    def __init__(self, message="Action violates business rules."):
        super().__init__(message, status_code=400)


class AttachmentRejectedError(BusinessRuleError):
    """For files that are too large or of a type chat does not accept."""

    def __init__(self, message="Attachment rejected."):
        super().__init__(message)


class DatabaseError(ServiceError):
    """For general database errors during service operations."""

    def __init__(self, message="A database error occurred."):
        super().__init__(message, status_code=500)


class StorageError(ServiceError):
    """For failures reading or writing stored objects."""

    def __init__(self, message="A storage error occurred.", status_code=500):
        super().__init__(message, status_code=status_code)


class SignedUrlError(ServiceError):
    """For signed URLs that are expired, forged or for another object."""

    def __init__(self, message="Signed URL is not valid."):
        super().__init__(message, status_code=403)
