from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.models.schemas.experiment import VariantResponseModel


class Identity(BaseModel):
    """Who is being assigned: a signed-in user or an anonymous visitor."""

    user_id: Optional[str] = None
    anon_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def is_valid(self) -> bool:
        return (self.user_id is None) != (self.anon_id is None)

    def describe(self) -> str:
        return f"user:{self.user_id}" if self.user_id is not None else f"anon:{self.anon_id}"


class AssignRequestModel(BaseModel):
    anon_id: Optional[str] = Field(None, min_length=1)


class AssignmentModel(BaseModel):
    """A persistent visitor assignment record."""

    assignment_id: str
    experiment_id: str
    variant_id: str
    user_id: Optional[str] = None
    anon_id: Optional[str] = None
    assignment_timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignmentResponseModel(BaseModel):
    included: bool
    assignment: Optional[AssignmentModel] = None
    variant: Optional[VariantResponseModel] = None
    message: Optional[str] = None
