"""
Error taxonomy shared by the core and the HTTP layer.
"""


class CreditBureauError(Exception):
    """Base class for every error the core surfaces to callers."""
    status_code = 500


class NotAuthenticated(CreditBureauError):
    """No identity is available for a mutating call."""
    status_code = 401


class Forbidden(CreditBureauError):
    """Identity present but it does not own the record."""
    status_code = 403


class NotFound(CreditBureauError):
    """Report id absent from the store."""
    status_code = 404


class InvalidTransition(CreditBureauError):
    """Report status is already terminal."""
    status_code = 409


class ConcurrentUpdate(CreditBureauError):
    """A conditional write lost against another writer."""
    status_code = 409


class InvalidReport(CreditBureauError, ValueError):
    """Submission payload rejected (no sources, non-numeric score)."""
    status_code = 400


class DecodeError(CreditBureauError, ValueError):
    """Opaque payload carries the codec tag but does not hold a number."""
    status_code = 422


class UnknownOperation(CreditBureauError, ValueError):
    """Transform name not recognised while strict transforms are enabled."""
    status_code = 400


class UserRejected(CreditBureauError):
    """The signing collaborator declined or failed to sign the challenge."""
    status_code = 403


class InvalidSignature(CreditBureauError):
    """A configured verifier refused the signature."""
    status_code = 403


class StoreUnavailable(CreditBureauError):
    """The key-value store availability probe failed."""
    status_code = 503


class StoreWriteError(CreditBureauError):
    """The key-value store refused a write."""
    status_code = 503
