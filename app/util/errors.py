from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse


class CheckInError(Exception):
    """
    Base class for every failure the check-in flow reports to a caller.

    Each subclass carries the HTTP status it maps to and a human-readable message.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False
    msg = "Check in failed"

    def __init__(self, msg: Optional[str] = None):
        if msg is not None:
            self.msg = msg
        super().__init__(self.msg)


class InvalidEmail(CheckInError):
    msg = "Check your email again"


class InvalidCode(CheckInError):
    msg = "Invalid form information sent to server, check if code is valid"


class Unauthorized(CheckInError):
    status_code = status.HTTP_403_FORBIDDEN
    msg = "Check your code and the code's expiration date again, currently unauthorized to sign in"


class Throttled(CheckInError):
    def __init__(self, wait: str):
        self.wait = wait
        super().__init__(f"Cannot check in more than once in a week, try again in {wait}")


class StoreReadFailure(CheckInError):
    status_code = status.HTTP_502_BAD_GATEWAY
    msg = "Could not read from Google Sheets"


class StoreWriteFailure(CheckInError):
    status_code = status.HTTP_502_BAD_GATEWAY
    msg = "Could not write to Google Sheets"


class StoreTimeout(CheckInError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    retryable = True
    msg = "Google Sheets took too long to respond, try again"


class AuthFailure(CheckInError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    msg = "Not authorized with Google, run the authorization step again"


class IssuanceFailed(CheckInError):
    msg = "Could not save the generated code to Google Sheets"


class Errors:
    def __init__(self):
        super(Errors, self).__init__

    def generate(num=400, msg="Bad request.", err=None):
        return JSONResponse(
            {"success": False, "msg": msg, "err": err},
            status_code=num,
        )

    def from_exception(e: CheckInError):
        return Errors.generate(e.status_code, e.msg, type(e).__name__)

    def basic_http():
        return {
            400: {"description": "Invalid input or check in not allowed yet."},
            403: {"description": "Code is wrong or expired."},
            502: {"description": "Google Sheets request failed."},
            503: {"description": "Not authorized with Google."},
            504: {"description": "Google Sheets request timed out."},
        }
