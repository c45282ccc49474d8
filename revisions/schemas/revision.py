# revisions/schemas/revision.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from revisions.schemas.snapshot import SnapshotDocument


class RevisionRead(BaseModel):
    """
    Read model for a single revision entry.
    """

    id: int = Field(..., description="Unique ID of the revision")
    owner_id: int = Field(..., description="ID of the owning record")
    owner_type: str = Field(..., description="Type discriminator of the owner")
    user_id: Optional[int] = Field(
        None, description="User ID who caused the revision (may be null)"
    )
    snapshot: SnapshotDocument = Field(..., description="Captured record state")
    created_at: datetime = Field(..., description="When this revision was created")

    model_config = ConfigDict(from_attributes=True)
