# SPDX-License-Identifier: MIT
# Copyright (c) 2024 Collegiate Cyber Defense Club
import logging

from fastapi import APIRouter, Depends

from app.models.checkin import CheckInRequest
from app.util.checkin import AttendanceReconciler, CodeIssuer, get_clock
from app.util.errors import CheckInError, Errors
from app.util.settings import Settings
from app.util.sheets import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/checkin", tags=["Check In"], responses=Errors.basic_http())


def get_issuer(store=Depends(get_store), clock=Depends(get_clock)) -> CodeIssuer:
    return CodeIssuer(store, Settings().checkin, clock=clock)


def get_reconciler(store=Depends(get_store), clock=Depends(get_clock)) -> AttendanceReconciler:
    return AttendanceReconciler(store, Settings().checkin, clock=clock)


@router.get("/generate")
def generate(issuer: CodeIssuer = Depends(get_issuer)):
    """
    Get a new session check in code. Any previous code stops working.
    """
    try:
        code = issuer.issue_code()
    except CheckInError as e:
        return Errors.generate(400, e.msg, type(e).__name__)

    return {
        "success": True,
        "msg": "Successfully updated the generated code in Google Sheets",
        "code": code.token,
        "expiresIn": code.expires_at,
    }


@router.post("/update")
def update(
    body: CheckInRequest,
    reconciler: AttendanceReconciler = Depends(get_reconciler),
):
    """
    Write/update a member's attendance, creating their row if needed.
    """
    try:
        outcome = reconciler.check_in(body.code, body.email)
    except CheckInError as e:
        return Errors.from_exception(e)

    result = {
        "success": True,
        "msg": "Successfully updated/upserted member's check in count in Google Sheets",
        "count": outcome.record.check_in_count,
    }
    if outcome.inserted:
        result["inserted"] = True
    else:
        result["updated"] = True
    return result
