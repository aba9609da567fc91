# school_library/controllers/fine_controller.py

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from school_library.errors import ValidationError
from school_library.repositories.fine_repo import FineRepo
from school_library.services.fine_service import FineService
from school_library.utils.auth import current_member
from school_library.utils.decorators import staff_required

fine_bp = Blueprint("fines", __name__)


def _fine_json(f):
    return {
        "id": f.id,
        "loan_id": f.loan_id,
        "user_id": f.user_id,
        "book_id": f.book_id,
        "fine_type": f.fine_type,
        "amount": float(f.amount),
        "days_overdue": f.days_overdue,
        "status": f.status,
        "issued_at": f.issued_at.isoformat() if f.issued_at else None,
        "paid_at": f.paid_at.isoformat() if f.paid_at else None,
        "waived_by": f.waived_by,
        "waive_reason": f.waive_reason,
        "notes": f.notes,
    }


@fine_bp.get("/my")
@jwt_required()
def my_fines():
    me = current_member()
    return jsonify({"success": True, "data": [_fine_json(f) for f in FineRepo.list_by_user(me.id)]})


@fine_bp.get("/")
@jwt_required()
@staff_required
def all_fines():
    try:
        user_id = int(request.args["userId"]) if request.args.get("userId") else None
    except ValueError:
        raise ValidationError("userId must be an integer")
    rows = FineRepo.list_filtered(status=request.args.get("status") or None, user_id=user_id)
    return jsonify({"success": True, "data": [_fine_json(f) for f in rows]})


@fine_bp.post("/<int:fine_id>/pay")
@jwt_required()
@staff_required
def pay_fine(fine_id: int):
    data = request.get_json(silent=True) or {}
    fine = FineService.pay(fine_id, current_member().id, notes=data.get("notes"))
    return jsonify({"success": True, "message": f"Fine of ${float(fine.amount):.2f} marked as paid"})


@fine_bp.post("/<int:fine_id>/waive")
@jwt_required()
@staff_required
def waive_fine(fine_id: int):
    data = request.get_json(silent=True) or {}
    fine = FineService.waive(fine_id, current_member().id, reason=data.get("reason"))
    return jsonify({"success": True, "message": f"Fine of ${float(fine.amount):.2f} waived"})


@fine_bp.post("/pay-all/<int:user_id>")
@jwt_required()
@staff_required
def pay_all(user_id: int):
    data = request.get_json(silent=True) or {}
    count, total = FineService.pay_all(user_id, current_member().id, notes=data.get("notes"))
    return jsonify({
        "success": True,
        "message": f"{count} fine(s) paid totaling ${total:.2f}",
        "count": count,
        "totalPaid": float(total),
    })


@fine_bp.post("/issue")
@jwt_required()
@staff_required
def issue_fine():
    data = request.get_json(silent=True) or {}
    fine = FineService.issue(
        user_id=data.get("userId"),
        fine_type=data.get("fineType"),
        amount=data.get("amount"),
        staff_id=current_member().id,
        book_id=data.get("bookId"),
        notes=data.get("notes"),
    )
    return jsonify({"success": True, "id": fine.id, "message": "Fine issued successfully"}), 201
