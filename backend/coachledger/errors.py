# Overview: Domain exception hierarchy shared by services and routes.

"""
Error taxonomy

- ValidationError: malformed or out-of-range input, raised before any write.
- NotFoundError: addressed coach/member/package/event does not exist.
- PermissionDenied: actor role may not perform the operation.
- ConflictError: business-rule conflict; the named subclasses let the
  presentation layer render a specific message. None of them leave the
  ledger or aggregates mutated.
- ConsistencyError: an aggregate or balance would become impossible; the
  whole transaction is aborted.
"""


class ValidationError(ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class NotFoundError(LookupError):
    """404-level missing entity."""
    code = "NOT_FOUND"


class PermissionDenied(Exception):
    """403-level role violation."""
    code = "PERMISSION_DENIED"


class ConflictError(ValueError):
    """409-level business rule conflict."""
    code = "CONFLICT"


class QuotaFull(ConflictError):
    code = "QUOTA_FULL"


class DuplicateParticipant(ConflictError):
    code = "DUPLICATE_PARTICIPANT"


class InsufficientCredit(ConflictError):
    code = "INSUFFICIENT_CREDIT"


class AlreadyApproved(ConflictError):
    code = "ALREADY_APPROVED"


class AlreadyApplied(ConflictError):
    code = "ALREADY_APPLIED"


class PackageExpired(ConflictError):
    code = "PACKAGE_EXPIRED"


class ConsistencyError(RuntimeError):
    """Aggregate or balance invariant would be violated."""
    code = "CONSISTENCY_ERROR"
