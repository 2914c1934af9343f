"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class DuplicatePeriodError(DomainException):
    """Interest period was already marked processed"""

    def __init__(self, year: int, month: int):
        super().__init__(f"Interest period {year:04d}-{month:02d} is already processed")
        self.year = year
        self.month = month


class AccountNotFoundError(DomainException):
    """Savings account does not exist"""

    pass


class DepositCreditFailure(DomainException):
    """Crediting interest for a single fixed deposit failed"""

    def __init__(self, fd_id: str, reason: str):
        super().__init__(f"Failed to credit interest for {fd_id}: {reason}")
        self.fd_id = fd_id
        self.reason = reason


class StorageUnavailableError(DomainException):
    """Database could not be reached or the run transaction could not commit"""

    pass


class SystemActorUnavailableError(DomainException):
    """No employee identity is available to attribute interest credits to"""

    pass


class AuthorizationDenied(DomainException):
    """Caller lacks the role required for the operation"""

    pass
