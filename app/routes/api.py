import logging

from fastapi import APIRouter

from app.models.info import InfoModel, PublicContact
from app.util.errors import Errors

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["API"], responses=Errors.basic_http())


@router.get("/")
async def get_root():
    """
    Get API information.
    """
    return InfoModel(
        name="CheckInLite",
        description="Weekly club check in, backed by Google Sheets.",
        credits=[
            PublicContact(
                name="Club Officers",
                email="officers@sjsu.edu",
            )
        ],
    )
