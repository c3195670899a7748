# SPDX-License-Identifier: MIT
# Copyright (c) 2024 Collegiate Cyber Defense Club
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from app.util.authentication import GoogleAuth, get_google_auth
from app.util.errors import AuthFailure, Errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["Auth"])


@router.get("/")
def authorize(auth: GoogleAuth = Depends(get_google_auth)):
    """
    Sends the operator to Google's consent screen for the account that owns the sheet.
    """
    try:
        authorization_url = auth.authorization_url()
    except AuthFailure as e:
        return Errors.from_exception(e)
    return RedirectResponse(authorization_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
def callback(code: Optional[str] = None):
    """
    Returns the code needed to generate the token file.
    Paste it into `python -m app.entry authorize` after logging in with the Google
    account that can read/write the configured sheet.
    """
    return {"code": code}
