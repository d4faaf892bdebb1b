"""Domain errors rendered by the app-level error handler as JSON envelopes."""


class DomainError(Exception):
    code = "error"
    status = 400
    default_message = "Request failed"

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class Unauthenticated(DomainError):
    code = "Unauthenticated"
    status = 401
    default_message = "Authentication required"


class Forbidden(DomainError):
    code = "Forbidden"
    status = 403
    default_message = "You do not have permission to access this resource"


class NotAssigned(DomainError):
    code = "NotAssigned"
    status = 403
    default_message = "You are not assigned to this course for the given semester and year"


class NotFound(DomainError):
    code = "NotFound"
    status = 404
    default_message = "Not found"


class FacultyProfileNotFound(DomainError):
    code = "FacultyProfileNotFound"
    status = 404
    default_message = "Faculty profile not found"


class ValidationFailed(DomainError):
    code = "ValidationFailed"


class MarksCapExceeded(DomainError):
    code = "MarksCapExceeded"


class DuplicatePractical(DomainError):
    code = "DuplicatePractical"
    default_message = "A practical assessment already exists for this course"


class NoValidMappings(DomainError):
    code = "NoValidMappings"
    default_message = "No valid mappings provided"


class LockedByMarks(DomainError):
    code = "LockedByMarks"
    default_message = "Marks have already been entered for this assessment"


class AlreadyFinalized(DomainError):
    code = "AlreadyFinalized"
    default_message = "Marks are already finalized for this assessment"


class NotFinalized(DomainError):
    code = "NotFinalized"
    default_message = "Marks are not finalized for this assessment"


class MarksFinalized(DomainError):
    code = "MarksFinalized"
    default_message = "Marks are finalized for this assessment"


class InvalidMarksPresent(DomainError):
    code = "InvalidMarksPresent"
    default_message = "Some marks exceed the allocated marks"


class AllocationMismatch(DomainError):
    code = "AllocationMismatch"


class InvalidClos(DomainError):
    code = "InvalidClos"
    default_message = "Some CLOs do not belong to this course"


class NoValidMarks(DomainError):
    code = "NoValidMarks"
    default_message = "No valid marks entries to process"


class UniqueConstraintViolation(DomainError):
    code = "UniqueConstraintViolation"
    status = 409
    default_message = "A record with the same unique key already exists"
