from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProfileUpsert(BaseModel):
    display_name: Optional[str] = None
    is_visible: bool = True

    # Be lenient with extra fields from clients
    model_config = ConfigDict(extra="ignore")


class ProfileRead(BaseModel):
    id: str
    display_name: Optional[str] = None
    is_visible: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
