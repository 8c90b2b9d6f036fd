"""
Domain Data Models
==================
Pydantic v2 schema definitions for the review template engine:
- Generation requests and normalized generated reviews
- Template pool records owned by categories
- Per-business provider configuration with secret handling
- Read-only model catalog entries

Architecture: Domain-Driven Design + Value Objects
"""

from datetime import datetime
from typing import Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    field_validator,
)

from config.constants import (
    MAX_REVIEWS_PER_REQUEST,
    MAX_TARGET_WORD_COUNT,
    MIN_TARGET_WORD_COUNT,
)
from core.enums import (
    ProviderName,
    ReviewLength,
    TemplateStatus,
    Tone,
    UniqueReviewMethod,
)

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on field updates
        use_enum_values=False,  # Keep enum types (don't convert to strings)
        protected_namespaces=(),  # Allow model_id fields
    )


def _new_id() -> str:
    return str(uuid4())


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Render a secret with only its first characters visible."""
    if not value:
        return "<empty>"
    if len(value) <= visible:
        return "*" * len(value)
    return f"{value[:visible]}{'*' * 8}"


# =============================================================================
# GENERATION MODELS
# =============================================================================


class GenerationRequest(BaseModelConfig):
    """
    Everything needed to render a prompt and pick a provider.

    ``length`` is either a bucket (short/medium/long) or an explicit target
    word count. ``business_id`` is only consulted for credential resolution.
    """

    model_config = ConfigDict(frozen=True)

    business_context: str = Field(..., min_length=1)
    keywords: list[str] = Field(..., min_length=1)
    count: int = Field(default=1, ge=1, le=MAX_REVIEWS_PER_REQUEST)
    tone: Tone = Field(default=Tone.PROFESSIONAL)
    length: Union[ReviewLength, int] = Field(default=ReviewLength.MEDIUM)
    provider_id: str = Field(..., min_length=1)
    model_id: Optional[str] = None
    custom_prompt_override: Optional[str] = None
    business_id: Optional[str] = None

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        """Strip whitespace and reject lists that are blank after stripping."""
        cleaned = [keyword.strip() for keyword in v if keyword and keyword.strip()]
        if not cleaned:
            raise ValueError("At least one non-blank keyword is required")
        return cleaned

    @field_validator("length")
    @classmethod
    def validate_length(cls, v: Union[ReviewLength, int]) -> Union[ReviewLength, int]:
        if isinstance(v, int) and not isinstance(v, ReviewLength):
            if not MIN_TARGET_WORD_COUNT <= v <= MAX_TARGET_WORD_COUNT:
                raise ValueError(
                    f"Target word count must be between {MIN_TARGET_WORD_COUNT} "
                    f"and {MAX_TARGET_WORD_COUNT}, got {v}"
                )
        return v


class GeneratedReview(BaseModelConfig):
    """Normalized review text produced by a provider. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    keywords_used: list[str] = Field(default_factory=list)
    seo_score: int = Field(default=0, ge=0, le=100)

    @computed_field
    @property
    def word_count(self) -> int:
        return len(self.text.split())


class GenerationResult(BaseModelConfig):
    """Scored reviews returned by the generation orchestrator."""

    reviews: list[GeneratedReview] = Field(default_factory=list)
    provider: ProviderName
    model_id: str
    generated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# BUSINESS & TEMPLATE POOL MODELS
# =============================================================================


class Business(BaseModelConfig):
    """Business whose name and description frame generated reviews."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class Category(BaseModelConfig):
    """
    Review category owning a pool of templates.

    A ``target_pool_size`` of None defers to
    ``LifecycleSettings.default_target_pool_size``.
    """

    id: str = Field(default_factory=_new_id)
    business_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    target_pool_size: Optional[int] = Field(default=None, ge=0)


class Template(BaseModelConfig):
    """
    Stored, ready-to-copy review text tied to a category.

    Deleted when a customer copies it; automatic replacements are created
    ACTIVE with ``is_manual=False`` and the same ``word_count_target``.
    """

    id: str = Field(default_factory=_new_id)
    business_id: str
    category_id: str
    content: str = Field(..., min_length=1)
    seo_keywords: list[str] = Field(default_factory=list)
    seo_score: int = Field(default=0, ge=0, le=100)
    word_count_target: int = Field(..., gt=0)
    is_manual: bool = False
    status: TemplateStatus = TemplateStatus.ACTIVE
    times_shown: int = Field(default=0, ge=0)
    times_copied: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status.is_visible


class TemplateWithCategory(BaseModelConfig):
    """Template joined with its owning category."""

    template: Template
    category: Category


class ProviderConfig(BaseModelConfig):
    """
    AI provider credentials configured for a business.

    The API key is a SecretStr so it never leaks through repr or logs;
    use ``masked_api_key`` when a diagnostic reference is needed.
    """

    id: str = Field(default_factory=_new_id)
    business_id: str
    provider: ProviderName
    api_key: SecretStr
    model_id: str = Field(..., min_length=1)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def masked_api_key(self) -> str:
        return mask_secret(self.api_key.get_secret_value())


class ModelInfo(BaseModelConfig):
    """Provider-reported or fallback catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: ProviderName
    context_length: Optional[int] = None


class UniqueReview(BaseModelConfig):
    """Customer-facing review text with how it was produced."""

    content: str
    method: UniqueReviewMethod
    template_id: Optional[str] = None
