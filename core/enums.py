"""
Domain Enumerations & Type Taxonomy
====================================
Type-safe enumerations for the review template engine with
string values for JSON serialization and record-store persistence.

Architecture: Type-Driven Design + ADT (Algebraic Data Types)
"""

from enum import Enum, IntEnum


class ProviderName(str, Enum):
    """
    Supported AI text-generation vendors.

    String enum so provider identifiers round-trip through JSON payloads
    and stored provider configurations without a mapping table.
    """

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: str) -> "ProviderName":
        """Resolve a provider identifier case-insensitively."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    def __str__(self) -> str:
        return self.value


class Tone(str, Enum):
    """Voice requested from the model for generated reviews."""

    PROFESSIONAL = "professional"
    CASUAL = "casual"
    ENTHUSIASTIC = "enthusiastic"


class ReviewLength(str, Enum):
    """
    Advisory review length buckets.

    Mapped to word-count ranges by the prompt builder; an explicit integer
    target bypasses the buckets entirely.
    """

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class TemplateStatus(str, Enum):
    """
    Template lifecycle states.

    ACTIVE templates form the customer-facing pool. DRAFT and APPROVED are
    only used by manual curation; automatic pool maintenance writes ACTIVE.
    """

    DRAFT = "draft"
    APPROVED = "approved"
    ACTIVE = "active"
    ARCHIVED = "archived"

    @property
    def is_visible(self) -> bool:
        """Whether templates in this state are shown to customers."""
        return self == TemplateStatus.ACTIVE


class UniqueReviewMethod(str, Enum):
    """How a customer-facing unique review was produced."""

    AI = "ai"
    TEMPLATE = "template"


class RegenerationTrigger(str, Enum):
    """Why the lifecycle manager generated a template."""

    CONSUMPTION = "consumption"
    POOL_CHECK = "pool_check"
    CATEGORY_BATCH = "category_batch"


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines alerting, retry, and recovery strategies.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed, automatic retry possible
    WARNING = 3  # Degraded performance, monitoring needed
    INFO = 2  # Notable event, no action required
    DEBUG = 1  # Diagnostic information
