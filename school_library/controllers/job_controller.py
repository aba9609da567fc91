from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import jwt_required

from school_library.tasks.circulation_jobs import run_daily_jobs
from school_library.utils.decorators import admin_required

job_bp = Blueprint("jobs", __name__)

@job_bp.post("/run")
@jwt_required()
@admin_required
def run_jobs():
    results = run_daily_jobs(current_app._get_current_object())
    return jsonify({"success": True, "message": "Daily circulation jobs ran", "data": results})
