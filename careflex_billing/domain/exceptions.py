"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class UpstreamAPIError(DomainException):
    """Patient backend returned an error or is unavailable"""

    pass


class InvalidSnapshotError(DomainException):
    """Billing snapshot payload is not usable at all"""

    pass
