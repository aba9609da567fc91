from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from school_library.models.user import ROLE_STUDENT


@dataclass(frozen=True)
class CirculationPolicy:
    """Library rules read once from the Flask config."""

    fine_rate_per_day: Decimal = Decimal("0.25")
    max_books_student: int = 3
    max_books_staff: int = 5
    loan_period_days: int = 14
    renewal_period_days: int = 7
    max_renewals: int = 2
    hold_expiry_days: int = 3
    due_reminder_days: int = 2
    fine_threshold_for_checkout: Decimal = Decimal("5.00")

    @classmethod
    def from_config(cls, config) -> "CirculationPolicy":
        return cls(
            fine_rate_per_day=Decimal(str(config.get("FINE_RATE_PER_DAY", "0.25"))),
            max_books_student=int(config.get("MAX_BOOKS_STUDENT", 3)),
            max_books_staff=int(config.get("MAX_BOOKS_STAFF", 5)),
            loan_period_days=int(config.get("LOAN_PERIOD_DAYS", 14)),
            renewal_period_days=int(config.get("RENEWAL_PERIOD_DAYS", 7)),
            max_renewals=int(config.get("MAX_RENEWALS", 2)),
            hold_expiry_days=int(config.get("HOLD_EXPIRY_DAYS", 3)),
            due_reminder_days=int(config.get("DUE_REMINDER_DAYS", 2)),
            fine_threshold_for_checkout=Decimal(str(config.get("FINE_THRESHOLD_FOR_CHECKOUT", "5.00"))),
        )

    @classmethod
    def current(cls) -> "CirculationPolicy":
        return cls.from_config(current_app.config)

    def max_books_for(self, role: str) -> int:
        return self.max_books_student if role == ROLE_STUDENT else self.max_books_staff
