import logging

# FastAPI
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

# Import routes
from app.routes import api, auth, checkin

# Import error handling
from app.util.errors import CheckInError, Errors

# Import options
from app.util.settings import Settings

if Settings().telemetry.enable:
    import sentry_sdk


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# Initiate FastAPI.
app = FastAPI()

if Settings().telemetry.enable:
    sentry_sdk.init(
        dsn=Settings().telemetry.url,
        traces_sample_rate=1.0,
        environment=Settings().telemetry.env,
    )

# Import endpoints from ./routes
app.include_router(api.router)
app.include_router(checkin.router)
app.include_router(auth.router)


@app.exception_handler(CheckInError)
async def check_in_error_handler(request: Request, exc: CheckInError):
    logger.warning(f"{request.url.path}: {exc.msg}")
    return Errors.from_exception(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.url.path}: malformed request {exc.errors()}")
    return Errors.generate(400, "Invalid form information sent to server", "InvalidRequest")


@app.on_event("startup")
def on_startup():
    google = Settings().google
    if not google.enable:
        logger.warning("Google integration disabled, check in endpoints will fail")
    else:
        logger.info(f"Using spreadsheet {google.spreadsheet_id}")
