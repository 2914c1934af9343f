"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class FixedDepositSnapshot:
    """Active fixed deposit joined to its plan, as seen at the start of a run"""

    fd_id: str
    balance: Decimal
    annual_rate: Decimal  # Percent, e.g. Decimal("12.00")
    duration_class: str  # Plan option, e.g. "1 year"
    linked_account_id: str


@dataclass(frozen=True)
class AccrualPeriod:
    """Calendar month being processed for interest"""

    start: date
    end: date

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def month(self) -> int:
        return self.start.month

    @property
    def lock_key(self) -> int:
        return self.year * 100 + self.month


class AccrualStatus(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    PARTIAL_FAILURE = "partial_failure"
    NOTHING_CREDITED = "nothing_credited"


class DepositOutcome(str, Enum):
    CREDITED = "credited"
    FAILED = "failed"
    SKIPPED_ALREADY_CREDITED = "skipped_already_credited"
    SKIPPED_NO_INTEREST = "skipped_no_interest"


@dataclass
class DepositResult:
    """What happened to one fixed deposit during a run"""

    fd_id: str
    outcome: DepositOutcome
    interest: Decimal = Decimal("0.00")
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AccrualResult:
    """Outcome of a single accrual engine invocation"""

    status: AccrualStatus
    period: AccrualPeriod
    message: str
    deposits: List[DepositResult] = field(default_factory=list)
    period_committed: bool = False

    @property
    def attempted(self) -> int:
        return sum(
            1 for d in self.deposits
            if d.outcome in (DepositOutcome.CREDITED, DepositOutcome.FAILED)
        )

    @property
    def credited(self) -> int:
        return sum(1 for d in self.deposits if d.outcome == DepositOutcome.CREDITED)

    @property
    def failed(self) -> int:
        return sum(1 for d in self.deposits if d.outcome == DepositOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return len(self.deposits) - self.attempted

    @property
    def total_interest(self) -> Decimal:
        return sum(
            (d.interest for d in self.deposits if d.outcome == DepositOutcome.CREDITED),
            Decimal("0.00"),
        )
