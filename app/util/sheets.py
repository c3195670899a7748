import logging
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, List, Tuple
from urllib.parse import quote

import requests
from oauthlib.oauth2 import OAuth2Error

from app.util.authentication import GoogleAuth, get_google_auth
from app.util.errors import AuthFailure, StoreReadFailure, StoreTimeout, StoreWriteFailure
from app.util.settings import Settings

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"

_locks: Dict[Tuple[str, str], threading.Lock] = {}
_locks_guard = threading.Lock()


def table_lock(spreadsheet_id: str, range_spec: str) -> threading.Lock:
    key = (spreadsheet_id, range_spec)
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


class SheetStore:
    """
    Reads and overwrites A1 ranges of one spreadsheet through the Sheets v4 values API.

    There is no partial update or merge: ``write_range`` replaces whatever the
    addressed cells held.
    """

    def __init__(self, auth: GoogleAuth, spreadsheet_id: str, timeout: float = 10):
        self.auth = auth
        self.spreadsheet_id = spreadsheet_id
        self.timeout = timeout

    def _url(self, range_spec: str) -> str:
        return f"{SHEETS_API}/{self.spreadsheet_id}/values/{quote(range_spec, safe='')}"

    def _request(self, method: str, range_spec: str, failure, **kwargs) -> requests.Response:
        client = self.auth.get_authorized_client()
        try:
            res = client.request(method, self._url(range_spec), timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.warning(f"Google Sheets {method} {range_spec} timed out after {self.timeout}s")
            raise StoreTimeout() from e
        except OAuth2Error as e:
            logger.exception("Google token refresh failed")
            self.auth.reset()
            raise AuthFailure() from e
        except requests.RequestException as e:
            logger.exception(f"Google Sheets {method} {range_spec} failed")
            raise failure() from e

        if res.status_code in (401, 403):
            logger.error(f"Google Sheets rejected our token: {res.status_code} {res.text}")
            self.auth.reset()
            raise AuthFailure()
        if res.status_code >= 400:
            logger.error(f"Google Sheets api error: {res.status_code} {res.text}")
            raise failure()
        return res

    def read_range(self, range_spec: str) -> List[List[Any]]:
        res = self._request(
            "GET",
            range_spec,
            StoreReadFailure,
            params={"majorDimension": "ROWS", "valueRenderOption": "UNFORMATTED_VALUE"},
        )
        try:
            body = res.json()
        except ValueError as e:
            raise StoreReadFailure("Google Sheets returned a malformed response") from e
        # Sheets omits "values" entirely for an empty range.
        return body.get("values", [])

    def write_range(self, range_spec: str, rows: List[List[Any]]):
        self._request(
            "PUT",
            range_spec,
            StoreWriteFailure,
            params={"valueInputOption": "RAW"},
            json={"majorDimension": "ROWS", "values": rows},
        )

    @contextmanager
    def transaction(self, range_spec: str):
        """
        Serializes read-modify-write cycles on one range within this process.
        """
        with table_lock(self.spreadsheet_id, range_spec):
            yield self


@lru_cache(maxsize=None)
def get_store() -> SheetStore:
    return SheetStore(
        get_google_auth(),
        Settings().google.spreadsheet_id,
        timeout=Settings().checkin.timeout,
    )
