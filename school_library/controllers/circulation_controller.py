from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from school_library.errors import ForbiddenError, NotFoundError, ValidationError
from school_library.repositories.loan_repo import LoanRepo
from school_library.services.circulation_service import CirculationService
from school_library.services.policy import CirculationPolicy
from school_library.utils.auth import current_member
from school_library.utils.decorators import staff_required

circulation_bp = Blueprint("circulation", __name__)


def _int_or_none(value, field):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _barcode_or_none(value):
    if value in (None, ""):
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError("copyBarcode must be a string")
    return str(value).strip() or None


def _iso(value):
    return value.isoformat() if value else None


def _loan_json(x):
    return {
        "id": x.id,
        "copy_id": x.copy_id,
        "copy_barcode": x.copy.barcode if x.copy else None,
        "book_id": x.book_id,
        "book_title": x.book.title if x.book else None,
        "user_id": x.user_id,
        "checkout_date": _iso(x.checkout_date),
        "due_date": _iso(x.due_date),
        "return_date": _iso(x.return_date),
        "renewal_count": x.renewal_count,
        "status": x.status,
        "notes": x.notes,
    }


@circulation_bp.post("/checkout")
@jwt_required()
@staff_required
def checkout():
    data = request.get_json(silent=True) or {}
    staff = current_member()
    loan = CirculationService.checkout(
        member_id=_int_or_none(data.get("userId"), "userId"),
        copy_barcode=_barcode_or_none(data.get("copyBarcode")),
        book_id=_int_or_none(data.get("bookId"), "bookId"),
        staff_id=staff.id,
        notes=data.get("notes"),
    )
    return jsonify({
        "success": True,
        "loanId": loan.id,
        "dueDate": _iso(loan.due_date),
        "message": f"Book checked out successfully. Due: {loan.due_date.date()}",
    }), 201


@circulation_bp.post("/return")
@jwt_required()
@staff_required
def return_book():
    data = request.get_json(silent=True) or {}
    staff = current_member()
    result = CirculationService.return_book(
        copy_barcode=_barcode_or_none(data.get("copyBarcode")),
        loan_id=_int_or_none(data.get("loanId"), "loanId"),
        staff_id=staff.id,
    )
    return jsonify({
        "success": True,
        "message": "Book returned successfully",
        "isOverdue": result.is_overdue,
        "daysOverdue": result.days_overdue,
        "fineAmount": float(result.fine_amount),
        "fineId": result.fine.id if result.fine else None,
        "heldForReservation": result.promoted.id if result.promoted else None,
    })


@circulation_bp.post("/renew")
@jwt_required()
def renew():
    data = request.get_json(silent=True) or {}
    requester = current_member()
    loan = CirculationService.renew(_int_or_none(data.get("loanId"), "loanId"), requester.id)
    max_renewals = CirculationPolicy.current().max_renewals
    return jsonify({
        "success": True,
        "message": "Loan renewed successfully",
        "newDueDate": _iso(loan.due_date),
        "renewalCount": loan.renewal_count,
        "renewalsRemaining": max_renewals - loan.renewal_count,
    })


@circulation_bp.get("/loans")
@jwt_required()
@staff_required
def list_loans():
    loans = LoanRepo.list_filtered(
        status=request.args.get("status") or None,
        user_id=_int_or_none(request.args.get("userId"), "userId"),
        overdue=request.args.get("overdue") == "true",
    )
    return jsonify({"success": True, "data": [_loan_json(x) for x in loans]})


@circulation_bp.get("/loans/my")
@jwt_required()
def my_loans():
    me = current_member()
    return jsonify({"success": True, "data": [_loan_json(x) for x in LoanRepo.list_by_user(me.id)]})


@circulation_bp.get("/loans/<int:loan_id>")
@jwt_required()
def get_loan(loan_id: int):
    me = current_member()
    loan = LoanRepo.get(loan_id)
    if loan is None:
        raise NotFoundError("Loan not found")
    if not me.is_library_staff and loan.user_id != me.id:
        raise ForbiddenError("Access denied")
    data = _loan_json(loan)
    if loan.fine:
        data["fine_amount"] = float(loan.fine.amount)
        data["fine_status"] = loan.fine.status
    return jsonify({"success": True, "data": data})


@circulation_bp.get("/overdue")
@jwt_required()
@staff_required
def overdue():
    loans = LoanRepo.list_filtered(overdue=True)
    return jsonify({"success": True, "data": [_loan_json(x) for x in loans]})


@circulation_bp.put("/copies/<int:copy_id>")
@jwt_required()
@staff_required
def update_copy(copy_id: int):
    data = request.get_json(silent=True) or {}
    staff = current_member()
    copy = CirculationService.update_copy(
        copy_id,
        staff.id,
        status=data.get("status"),
        condition=data.get("condition"),
        location=data.get("location"),
        notes=data.get("notes"),
    )
    return jsonify({
        "success": True,
        "data": {
            "id": copy.id,
            "barcode": copy.barcode,
            "status": copy.status,
            "condition": copy.condition,
            "location": copy.location,
        },
    })
