# SPDX-License-Identifier: MIT
# Copyright (c) 2024 Collegiate Cyber Defense Club
from typing import List, Optional

from pydantic import BaseModel


class PublicContact(BaseModel):
    name: str
    email: str


class InfoModel(BaseModel):
    name: Optional[str] = "CheckInLite"
    description: Optional[str] = None
    credits: List[PublicContact]
