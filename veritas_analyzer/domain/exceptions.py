"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidTransactionDataError(DomainException):
    """Transaction data is malformed or breaks the amount/type invariant"""

    pass


class ScoringError(DomainException):
    """Scoring inputs violate upstream invariants; indicates a defect, never expected in operation"""

    pass
