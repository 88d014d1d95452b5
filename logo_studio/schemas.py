from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


GenerationType = Literal["new", "variation", "edit"]
LogoStatus = Literal["generating", "completed", "failed"]
OperationStatus = Literal["pending", "completed", "failed"]


class GenerationStatus(str, Enum):
    IDLE = "idle"
    GENERATING_PROMPTS = "generating_prompts"
    CREATING_LOGOS = "creating_logos"
    PROCESSING_RESULTS = "processing_results"
    COMPLETED = "completed"
    ERROR = "error"


class EditCommandType(str, Enum):
    COLOR_CHANGE = "color_change"
    STYLE_CHANGE = "style_change"
    TEXT_EDIT = "text_edit"
    LAYOUT_ADJUST = "layout_adjust"
    SIZE_CHANGE = "size_change"
    SHAPE_MODIFY = "shape_modify"
    EFFECT_ADD = "effect_add"
    ELEMENT_REMOVE = "element_remove"
    COMPOSITION = "composition"
    SEASONAL_ADAPT = "seasonal_adapt"


# -------------------
# Generation input
# -------------------

class ExistingBranding(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_logo: bool = False
    brand_colors: List[str] = Field(default_factory=list)
    brand_description: str = ""


class BusinessInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_name: str = Field(..., min_length=1, description="Company or brand name shown in the logo.")
    industry: str = Field("", description="Industry key, e.g. technology or food_beverage.")
    business_type: str = Field("", description="Business type key, e.g. startup or ecommerce.")
    target_audience: str = ""
    brand_description: str = ""
    style_preferences: List[str] = Field(default_factory=list)
    color_preferences: List[str] = Field(default_factory=list)
    additional_requirements: str = ""
    existing_branding: Optional[ExistingBranding] = None


class InspirationLogo(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = "other"
    style: str = "modern"
    image_url: Optional[str] = None
    image_data: Optional[str] = Field(None, description="Inline image as a data URL.")


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    business: BusinessInfo
    inspiration_logo: Optional[InspirationLogo] = None
    variation_count: Optional[int] = Field(None, ge=1, le=10)
    custom_prompt: Optional[str] = None


# -------------------
# Prompts
# -------------------

class QualitySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    steps: int
    guidance: float
    strength: Optional[float] = None


class PromptMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_name: str
    industry: str = ""
    styles: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    inspiration_used: bool = False


class GeneratedPrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    main_prompt: str
    negative_prompt: Optional[str] = None
    style_modifiers: List[str] = Field(default_factory=list)
    aspect_ratio: str = "1:1"
    quality_settings: QualitySettings
    metadata: PromptMetadata


# -------------------
# Generated logos and workflow progress
# -------------------

class LogoMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at: datetime = Field(default_factory=utc_now)
    generation_type: GenerationType = "new"
    company_name: str
    industry: str = ""
    styles: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    inspiration_used: bool = False
    processing_time: float = Field(0.0, description="Seconds spent producing this logo.")


class GeneratedLogo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    image_url: str = ""
    image_data: Optional[str] = None
    prompt: GeneratedPrompt
    request_id: Optional[str] = None
    metadata: LogoMetadata
    status: LogoStatus = "generating"
    error: Optional[str] = None


class GenerationProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    workflow_id: str
    status: GenerationStatus
    current_step: str
    completed_steps: int = 0
    total_steps: int
    percentage: float = Field(0.0, ge=0, le=100)
    message: str = ""
    generated_logos: List[GeneratedLogo] = Field(default_factory=list)
    error: Optional[str] = None


class GenerationResult(BaseModel):
    success: bool
    logos: List[GeneratedLogo] = Field(default_factory=list)
    total_generated: int = 0
    failed_count: int = 0
    total_processing_time: float = 0.0
    error: Optional[str] = None


# -------------------
# Natural language editing
# -------------------

class StructuredCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    target: Optional[str] = None
    value: Optional[str] = None
    modifiers: List[str] = Field(default_factory=list)


class CommandMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    parsed_at: datetime = Field(default_factory=utc_now)
    processing_time: float = 0.0
    alternatives: List[str] = Field(default_factory=list)


class EditCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EditCommandType
    confidence: float = Field(..., ge=0.0, le=1.0)
    original_text: str
    structured_command: StructuredCommand
    prompt: str
    negative_prompt: Optional[str] = None
    strength: float = Field(..., ge=0.1, le=1.0)
    metadata: CommandMetadata = Field(default_factory=CommandMetadata)


class EditOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    command: EditCommand
    before_image: str
    after_image: Optional[str] = None
    result_logo: Optional[GeneratedLogo] = None
    timestamp: datetime = Field(default_factory=utc_now)
    status: OperationStatus = "pending"
    error: Optional[str] = None


class EditingSession(BaseModel):
    id: str
    original_logo: GeneratedLogo
    current_logo: GeneratedLogo
    edit_history: List[EditOperation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)


class SessionSummary(BaseModel):
    session: EditingSession
    edit_count: int = 0
    latest_operation: Optional[EditOperation] = None


# -------------------
# Typed variations
# -------------------

class VariationType(str, Enum):
    COLOR = "color"
    LAYOUT = "layout"
    SEASONAL = "seasonal"
    STYLE = "style"
    SIZE = "size"
    EFFECT = "effect"


class VariationResultMetadata(BaseModel):
    generated_at: datetime = Field(default_factory=utc_now)
    processing_time: float = 0.0
    success_count: int = 0
    failure_count: int = 0
    parameters: Dict[str, Any] = Field(default_factory=dict)


class VariationResult(BaseModel):
    id: str
    type: VariationType
    base_logo: GeneratedLogo
    variations: List[GeneratedLogo] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    metadata: VariationResultMetadata = Field(default_factory=VariationResultMetadata)


# -------------------
# HTTP payloads
# -------------------

class VariationsRequest(BaseModel):
    logo: GeneratedLogo
    count: int = Field(3, ge=1, le=3)
    include_image_data: bool = False


class EditLogoRequest(BaseModel):
    logo: GeneratedLogo
    instructions: str = Field(..., min_length=1)
    include_image_data: bool = False


class ParseCommandRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Free-text editing instruction.")
    logo: GeneratedLogo
    context: Optional[str] = None


class ExecuteCommandRequest(BaseModel):
    command: EditCommand
    logo: GeneratedLogo
    include_image_data: bool = False


class SuggestionsRequest(BaseModel):
    logo: GeneratedLogo


class CancelResponse(BaseModel):
    workflow_id: str
    cancelled: bool


class TypedVariationsRequest(BaseModel):
    logo: GeneratedLogo
    variation_type: VariationType
    count: int = Field(4, ge=1, le=10)
    custom_parameters: Dict[str, Any] = Field(default_factory=dict)
    include_image_data: bool = False


class BatchVariationsRequest(BaseModel):
    logo: GeneratedLogo
    types: List[VariationType] = Field(..., min_length=1)
    count_per_type: int = Field(2, ge=1, le=10)
    include_image_data: bool = False


class StartSessionRequest(BaseModel):
    logo: GeneratedLogo


class SessionEditRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Free-text editing instruction.")
    context: Optional[str] = None


class SessionVariationsRequest(SessionEditRequest):
    count: int = Field(3, ge=1, le=5)


class SelectVariationRequest(BaseModel):
    operation: EditOperation
