from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.models.orm.experiment import ExperimentStatus, ExperimentType


class VariantConfig(BaseModel):
    """Configuration for a single variant in an experiment."""

    variant_name: str = Field(..., min_length=1)
    description: Optional[str] = None
    traffic_weight: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Share of included traffic for this variant (weights sum to 100).",
    )
    configuration_json: Dict[str, Any] = Field(default_factory=dict)
    is_control: bool = False


class ExperimentCreateModel(BaseModel):
    """API input for a new experiment. Experiments always start as drafts."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    test_type: ExperimentType
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    traffic_allocation: float = Field(
        100.0,
        ge=0.0,
        le=100.0,
        description="Percent of all visitors included in the experiment.",
    )
    primary_metric_name: str = Field("purchase", description="Event type counted as a conversion")
    variants: List[VariantConfig] = Field(..., min_length=2)


class ExperimentUpdateModel(BaseModel):
    """Partial update; only the fields that are sent are applied."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    status: Optional[ExperimentStatus] = None
    traffic_allocation: Optional[float] = Field(None, ge=0.0, le=100.0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    winner_variant_id: Optional[str] = None


class VariantResponseModel(BaseModel):
    variant_id: str
    variant_name: str
    description: Optional[str] = None
    is_control: bool
    traffic_weight: float
    configuration_json: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class ExperimentResponseModel(BaseModel):
    experiment_id: str = Field(..., description="Unique ID for the experiment.")
    name: str
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    test_type: ExperimentType
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    status: ExperimentStatus
    traffic_allocation: float
    primary_metric_name: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    winner_variant_id: Optional[str] = None
    created_by: Optional[str] = None
    variants: List[VariantResponseModel]

    model_config = ConfigDict(from_attributes=True)


class ExperimentListResponseModel(BaseModel):
    experiments: List[ExperimentResponseModel]


# --- Reporting ---


class VariantResult(BaseModel):
    """Metrics aggregated for a single variant."""

    variant_id: str
    variant_name: str
    is_control: bool
    traffic_weight: float
    impressions: int = Field(..., description="Assignments to this variant.")
    conversions: int = Field(..., description="Assignments with a primary metric event.")
    conversion_rate: float = Field(..., description="Percent of impressions that converted.")
    total_revenue: float
    average_order_value: float
    event_counts: Dict[str, int]
    p_value: Optional[float] = None
    confidence_level: Optional[float] = None
    is_significant: bool = False


class ExperimentResultsModel(BaseModel):
    experiment_id: str
    name: str
    status: ExperimentStatus
    primary_metric_name: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    experiment_days_running: int
    total_users_in_experiment: int
    total_events: int
    global_conversion_rate: float
    variants: List[VariantResult]
