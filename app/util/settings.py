import json
import logging
import os
import pathlib
import re
import subprocess
from typing import Optional

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

config_file = pathlib.Path(os.getenv("CHECKIN_CONFIG_FILE", "config.yml")).resolve()
checkin_env = os.getenv("CHECKIN_ENV", "prod")


def BitwardenConfig(settings: dict):
    """
    Takes a dict of settings loaded from yaml and adds the secrets from bitwarden to the settings dict.
    The bitwarden secrets are mapped to the settings dict using the bitwarden_mapping dict.
    The secrets are sourced based on a project id in the settings dict.
    """
    logger.debug("Loading secrets from Bitwarden")
    try:
        project_id = settings["bws"]["project_id"]
        if bool(re.search("[^a-z0-9-]", project_id)):
            raise ValueError("Invalid project id")
        command = ["bws", "secret", "list", project_id, "--output", "json"]
        env_vars = os.environ.copy()
        bitwarden_raw = subprocess.run(
            command, text=True, env=env_vars, capture_output=True
        ).stdout
    except Exception as e:
        logger.exception(e)
        raise e
    bitwarden_settings = parse_json_to_dict(bitwarden_raw)

    bitwarden_mapping = {
        "google_client_id": ("google", "client_id"),
        "google_secret": ("google", "secret"),
        "google_spreadsheet_id": ("google", "spreadsheet_id"),
        "telemetry_url": ("telemetry", "url"),
    }

    for bw_key, (top_key, nested_key) in bitwarden_mapping.items():
        if bw_key in bitwarden_settings:
            settings.setdefault(top_key, {})[nested_key] = bitwarden_settings[bw_key]
    return settings


def parse_json_to_dict(json_string):
    data = json.loads(json_string)
    return {item["key"]: item["value"] for item in data}


settings = dict()

# Reads config from config.yml
if os.path.exists(config_file):
    with open(config_file) as f:
        settings.update(yaml.load(f, Loader=yaml.FullLoader) or {})
else:
    logger.error("No config file found at: " + str(config_file))


# If bitwarden is enabled, add secrets to settings
if settings.get("bws", {}).get("enable"):
    settings = BitwardenConfig(settings)


class GoogleConfig(BaseModel):
    """
    Represents the configuration for the Google Sheets integration.

    Attributes:
        client_id (str): The OAuth2 client ID of the Google Cloud project.
        secret (SecretStr): The OAuth2 client secret.
        redirect_base (str): Public base URL; the callback is served at /auth/google/callback.
        spreadsheet_id (str): The ID of the sheet used to store codes and attendance.
        token_path (str): Where the access/refresh token is persisted.
            Delete it after changing the scope.
        scope (str): The OAuth2 scope requested from Google.
        enable (Optional[bool]): A flag indicating whether the Google integration is enabled.
    """

    client_id: Optional[str] = Field(None)
    secret: Optional[SecretStr] = Field(None)
    redirect_base: Optional[str] = Field("http://localhost:8080")
    spreadsheet_id: Optional[str] = Field(None)
    token_path: Optional[str] = Field("token.json")
    scope: Optional[str] = Field("https://www.googleapis.com/auth/spreadsheets")
    enable: Optional[bool] = Field(True)

    @model_validator(mode="after")
    def check_required_fields(cls, values):
        enable = values.enable
        if enable:
            required_fields = ["client_id", "secret", "spreadsheet_id"]
            for field in required_fields:
                if getattr(values, field) is None:
                    raise ValueError(f"Google {field} is required when enable is True")
        return values


if settings.get("google"):
    google_config = GoogleConfig(**settings["google"])
elif checkin_env == "dev":
    google_config = GoogleConfig(enable=False)
else:
    logger.warning("Missing Google config")
    google_config = GoogleConfig(enable=False)


class CheckinConfig(BaseModel):
    """
    Check-in rules and sheet layout.

    Attributes:
        allowed_domain (str): Only emails under this domain may check in.
        sheet_name (str): Optional tab name prepended to both ranges.
        code_range (str): Single row holding the current code and its expiry.
        table_range (str): The attendance table (email, count, last check-in).
        code_length (int): Number of characters in a generated code.
        code_lifetime (int): Milliseconds a code stays valid, one session.
        cooldown (int): Milliseconds a member must wait between counted check-ins.
        timeout (float): Seconds before a call to Google Sheets is abandoned.
    """

    allowed_domain: str = "sjsu.edu"
    sheet_name: Optional[str] = None
    code_range: str = "A2:B2"
    table_range: str = "A5:C"
    code_length: int = Field(6, ge=4, le=32)
    code_lifetime: int = Field(7_200_000, gt=0)
    cooldown: int = Field(518_300_000, ge=0)
    timeout: float = Field(10, gt=0)

    def qualify(self, range_spec: str) -> str:
        if self.sheet_name:
            return f"'{self.sheet_name}'!{range_spec}"
        return range_spec


checkin_config = CheckinConfig(**settings.get("checkin", {}))


class TelemetryConfig(BaseModel):
    url: Optional[str] = None
    enable: Optional[bool] = False
    env: Optional[str] = "dev"


telemetry_config = TelemetryConfig(**settings.get("telemetry", {}))


class SingletonBaseSettingsMeta(type(BaseSettings), type):
    _instances = {}

    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]


class Settings(BaseSettings, metaclass=SingletonBaseSettingsMeta):
    google: GoogleConfig = google_config
    checkin: CheckinConfig = checkin_config
    telemetry: Optional[TelemetryConfig] = telemetry_config
    env: Optional[str] = checkin_env
