"""Domain error taxonomy.

Services raise these; the HTTP layer maps them to status codes in
``sharegate.main``. Nothing below the API layer raises ``HTTPException``.
"""


class ShareGateError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ShareGateError):
    status_code = 422
    code = "validation_error"


class NotFoundError(ShareGateError):
    status_code = 404
    code = "not_found"


class AuthorizationError(ShareGateError):
    status_code = 403
    code = "forbidden"


class ConflictError(ShareGateError):
    status_code = 409
    code = "conflict"
    retryable = False


class DuplicateDecisionError(ConflictError):
    code = "already_decided"


class RequestNotPendingError(ConflictError):
    code = "request_not_pending"


class RequestExpiredError(ConflictError):
    code = "request_expired"


class ProtectedPolicyError(ConflictError):
    code = "protected_policy"


class ConcurrencyConflictError(ConflictError):
    code = "version_conflict"
    retryable = True


class FallbackPolicyMissingError(ShareGateError):
    status_code = 500
    code = "fallback_policy_missing"
