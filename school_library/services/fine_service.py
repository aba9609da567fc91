from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from school_library.errors import FineAlreadyResolvedError, NotFoundError, ValidationError
from school_library.models.fine import Fine, FINE_TYPES, FINE_UNPAID, FINE_PAID, FINE_WAIVED
from school_library.repositories.book_repo import BookRepo
from school_library.repositories.fine_repo import FineRepo
from school_library.repositories.user_repo import UserRepo
from school_library.services.audit_service import AuditService, client_ip
from school_library.tasks.dispatcher import dispatch
from school_library.utils.dates import utcnow
from school_library.utils.locks import circulation_locks, member_key
from school_library.utils.transaction import atomic

CENT = Decimal("0.01")


class FineService:
    """Librarian actions on fines. Only unpaid fines move, and only once."""

    @staticmethod
    def _unpaid_for_update(fine_id: int) -> Fine:
        fine = FineRepo.get_for_update(fine_id)
        if fine is None:
            raise NotFoundError("Fine not found")
        if fine.status != FINE_UNPAID:
            raise FineAlreadyResolvedError(f"Fine is already {fine.status}", status=fine.status)
        return fine

    @staticmethod
    def pay(fine_id: int, staff_id: int, notes: str | None = None, now=None) -> Fine:
        now = now or utcnow()
        probe = FineRepo.get(fine_id)
        if probe is None:
            raise NotFoundError("Fine not found")

        with circulation_locks.hold(member_key(probe.user_id)):
            with atomic():
                fine = FineService._unpaid_for_update(fine_id)
                fine.status = FINE_PAID
                fine.paid_at = now
                if notes:
                    fine.notes = notes
                amount = Decimal(str(fine.amount))

        dispatch(AuditService.record, staff_id, "FINE_PAID", "fine", fine_id, {"amount": float(amount)}, client_ip())
        return fine

    @staticmethod
    def waive(fine_id: int, staff_id: int, reason: str | None = None) -> Fine:
        probe = FineRepo.get(fine_id)
        if probe is None:
            raise NotFoundError("Fine not found")

        with circulation_locks.hold(member_key(probe.user_id)):
            with atomic():
                fine = FineService._unpaid_for_update(fine_id)
                fine.status = FINE_WAIVED
                fine.waived_by = staff_id
                fine.waive_reason = reason
                amount = Decimal(str(fine.amount))

        dispatch(
            AuditService.record,
            staff_id,
            "FINE_WAIVED",
            "fine",
            fine_id,
            {"amount": float(amount), "reason": reason},
            client_ip(),
        )
        return fine

    @staticmethod
    def pay_all(user_id: int, staff_id: int, notes: str | None = None, now=None) -> tuple[int, Decimal]:
        """Settle every unpaid fine of a member; returns (count, total)."""
        now = now or utcnow()
        if UserRepo.get_by_id(user_id) is None:
            raise NotFoundError("Member not found")

        with circulation_locks.hold(member_key(user_id)):
            with atomic():
                UserRepo.get_for_update(user_id)
                fines = FineRepo.list_unpaid_for_update(user_id)
                total = Decimal("0.00")
                for fine in fines:
                    fine.status = FINE_PAID
                    fine.paid_at = now
                    if notes:
                        fine.notes = notes
                    total += Decimal(str(fine.amount))
                count = len(fines)

        current_app.logger.info(f"[fines] user={user_id} paid {count} fine(s) totaling {total}")
        dispatch(
            AuditService.record,
            staff_id,
            "FINES_PAID_ALL",
            "user",
            user_id,
            {"totalPaid": float(total), "count": count},
            client_ip(),
        )
        return count, total

    @staticmethod
    def issue(user_id, fine_type, amount, staff_id: int, book_id=None, notes: str | None = None, now=None) -> Fine:
        if not user_id or not fine_type or amount in (None, ""):
            raise ValidationError("User ID, fine type, and amount are required")
        if fine_type not in FINE_TYPES:
            raise ValidationError(f"Invalid fine type: {fine_type}")
        try:
            user_id = int(user_id)
            book_id = int(book_id) if book_id else None
        except (TypeError, ValueError):
            raise ValidationError("userId and bookId must be integers")
        try:
            value = Decimal(str(amount)).quantize(CENT)
        except (InvalidOperation, ValueError):
            raise ValidationError("Amount must be a number")
        if value <= 0:
            raise ValidationError("Amount must be greater than zero")

        if UserRepo.get_by_id(user_id) is None:
            raise NotFoundError("Member not found")
        if book_id and BookRepo.get(book_id) is None:
            raise NotFoundError("Book not found")

        with circulation_locks.hold(member_key(user_id)):
            with atomic():
                UserRepo.get_for_update(user_id)
                fine = FineRepo.create(
                    Fine(
                        user_id=user_id,
                        book_id=book_id,
                        fine_type=fine_type,
                        amount=value,
                        status=FINE_UNPAID,
                        issued_at=now or utcnow(),
                        notes=notes,
                    )
                )
                fine_id = fine.id

        dispatch(
            AuditService.record,
            staff_id,
            "FINE_ISSUED",
            "fine",
            fine_id,
            {"userId": user_id, "fineType": fine_type, "amount": float(value)},
            client_ip(),
        )
        return fine
