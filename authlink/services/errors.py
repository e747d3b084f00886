"""Error taxonomy for the pairing-code exchange.

Each error carries the HTTP status and a short machine-readable kind so the
exception handler in main.py can render it without a lookup table.
"""


__all__ = [
    "AuthLinkError",
    "CollisionExhausted",
    "CodeNotFound",
    "CodeExpired",
    "CodeAlreadyClaimed",
    "StorageFault",
]


class AuthLinkError(Exception):
    """Base class for all pairing errors."""

    status_code = 500
    error = "auth_link_error"


class CollisionExhausted(AuthLinkError):
    """No free code found within the retry bound. Transient, safe for the client to retry."""

    error = "collision_exhausted"

    def __init__(self, attempts: int):
        super().__init__(f"Could not allocate a unique code after {attempts} attempts")
        self.attempts = attempts


class CodeNotFound(AuthLinkError):
    status_code = 404
    error = "code_not_found"

    def __init__(self, message: str = "Invalid or unknown code"):
        super().__init__(message)


class CodeExpired(AuthLinkError):
    status_code = 410
    error = "code_expired"

    def __init__(self, message: str = "Code expired"):
        super().__init__(message)


class CodeAlreadyClaimed(AuthLinkError):
    status_code = 409
    error = "code_already_claimed"

    def __init__(self, message: str = "Code already claimed"):
        super().__init__(message)


class StorageFault(AuthLinkError):
    """Any persistence error other than a code collision. Not retried by the server."""

    error = "storage_fault"

    def __init__(self, message: str = "Storage error"):
        super().__init__(message)
