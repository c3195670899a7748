import json
import logging
import threading
from functools import lru_cache
from pathlib import Path
from typing import Optional

import requests
from oauthlib.oauth2 import OAuth2Error
from requests_oauthlib import OAuth2Session

from app.util.errors import AuthFailure
from app.util.settings import GoogleConfig, Settings

logger = logging.getLogger(__name__)

AUTHORIZATION_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CALLBACK_PATH = "/auth/google/callback"


class GoogleAuth:
    """
    Hands out an OAuth2 session authorized against the Google Sheets API.

    The token lives in ``token_path``. It is created once by the authorization
    bootstrap (``python -m app.entry authorize``) and afterwards refreshed by the
    session itself whenever the access token expires.
    """

    def __init__(self, config: GoogleConfig):
        self.config = config
        self._client: Optional[OAuth2Session] = None
        self._lock = threading.Lock()

    @property
    def redirect_uri(self) -> str:
        return self.config.redirect_base.rstrip("/") + CALLBACK_PATH

    @property
    def token_path(self) -> Path:
        return Path(self.config.token_path)

    def _require_enabled(self):
        if not self.config.enable:
            raise AuthFailure("Google integration is disabled")

    def _session(self, token: Optional[dict] = None) -> OAuth2Session:
        return OAuth2Session(
            self.config.client_id,
            redirect_uri=self.redirect_uri,
            scope=[self.config.scope],
            token=token,
            auto_refresh_url=TOKEN_URL,
            auto_refresh_kwargs={
                "client_id": self.config.client_id,
                "client_secret": self.config.secret.get_secret_value(),
            },
            token_updater=self.save_token,
        )

    def authorization_url(self) -> str:
        self._require_enabled()
        # offline + consent makes Google hand back a refresh token every time.
        authorization_url, _state = self._session().authorization_url(
            AUTHORIZATION_BASE_URL, access_type="offline", prompt="consent"
        )
        return authorization_url

    def fetch_token(self, code: str) -> dict:
        self._require_enabled()
        oauth = self._session()
        try:
            token = oauth.fetch_token(
                TOKEN_URL,
                client_secret=self.config.secret.get_secret_value(),
                code=code,
            )
        except (OAuth2Error, requests.RequestException) as e:
            logger.exception("Error while trying to retrieve access token")
            raise AuthFailure("Error while trying to retrieve access token") from e

        self.save_token(token)
        with self._lock:
            self._client = oauth
        return token

    def load_token(self) -> dict:
        try:
            return json.loads(self.token_path.read_text())
        except FileNotFoundError as e:
            raise AuthFailure(
                f"No Google token at {self.token_path}, run `python -m app.entry authorize`"
            ) from e
        except (OSError, json.JSONDecodeError) as e:
            logger.exception(f"Unreadable Google token at {self.token_path}")
            raise AuthFailure(f"Unreadable Google token at {self.token_path}") from e

    def save_token(self, token: dict):
        self.token_path.write_text(json.dumps(token))
        logger.info(f"Token stored to {self.token_path}")

    def get_authorized_client(self) -> OAuth2Session:
        with self._lock:
            if self._client is None:
                self._require_enabled()
                self._client = self._session(token=self.load_token())
            return self._client

    def reset(self):
        with self._lock:
            self._client = None


@lru_cache(maxsize=None)
def get_google_auth() -> GoogleAuth:
    return GoogleAuth(Settings().google)
