from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from datetime import datetime


class EventCreateModel(BaseModel):
    """Schema for tracking an experiment event (API Input)."""

    variant_id: str
    event_type: str = Field(..., min_length=1, description="e.g., 'view', 'click', 'purchase'")
    event_value: Optional[float] = Field(None, description="Revenue for purchase events")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    anon_id: Optional[str] = None


class EventResponseModel(BaseModel):
    event_id: str
    experiment_id: str
    variant_id: str
    assignment_id: str
    type: str
    value: Optional[float] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)
