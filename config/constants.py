"""
System Constants & Invariants
==============================
Immutable domain constants defining SEO scoring weights, prompt
vocabulary, template pool ladders, and vendor model catalogs.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Final

from core.enums import ProviderName, ReviewLength

# =============================================================================
# SEO SCORING WEIGHTS
# =============================================================================


@dataclass(frozen=True)
class SEOWeights:
    """
    Point budget of each SEO sub-score (sums to 100) and the shape
    parameters of the piecewise-linear penalties.
    """

    KEYWORD_COVERAGE: float = 30.0
    KEYWORD_DENSITY: float = 20.0
    LENGTH_FIT: float = 15.0
    READABILITY: float = 20.0
    UNIQUENESS: float = 15.0

    # Density, in percent of total words
    DENSITY_OPTIMAL_MIN: float = 2.0
    DENSITY_OPTIMAL_MAX: float = 3.0
    DENSITY_TARGET: float = 2.5
    DENSITY_PENALTY_PER_POINT: float = 4.0

    # Length, in words
    LENGTH_OPTIMAL_MIN: int = 100
    LENGTH_OPTIMAL_MAX: int = 150
    LENGTH_TARGET: int = 125
    LENGTH_PENALTY_PER_WORD: float = 0.1


SEO_WEIGHTS: Final = SEOWeights()


@dataclass(frozen=True)
class FleschConstants:
    """Flesch Reading Ease coefficients."""

    BASE: float = 206.835
    SENTENCE_LENGTH_WEIGHT: float = 1.015
    SYLLABLE_WEIGHT: float = 84.6


FLESCH: Final = FleschConstants()

VOWELS: Final[str] = "aeiouy"

# Stock phrases that make a review read as generic
GENERIC_STOCK_PHRASES: Final[tuple[str, ...]] = (
    "great service",
    "highly recommend",
    "amazing experience",
    "will definitely return",
    "excellent food",
    "friendly staff",
    "great atmosphere",
    "best place",
    "love this place",
)

# =============================================================================
# PROMPT VOCABULARY
# =============================================================================

LENGTH_WORD_RANGES: Final[dict[ReviewLength, tuple[int, int]]] = {
    ReviewLength.SHORT: (50, 100),
    ReviewLength.MEDIUM: (100, 150),
    ReviewLength.LONG: (150, 200),
}

SYSTEM_PROMPT: Final[str] = (
    "You are an expert SEO review writer. Always respond with valid JSON only."
)

DEFAULT_BUSINESS_DESCRIPTION: Final[str] = "Professional services"

# Rotating angles for category batch generation
VARIATION_ANGLES: Final[tuple[str, ...]] = (
    "focusing on the results and outcomes",
    "emphasizing the customer service experience",
    "highlighting the expertise and professionalism",
    "describing the process and journey",
    "focusing on value for money",
    "emphasizing speed and efficiency",
    "highlighting innovation and creativity",
    "focusing on the team and people",
    "describing specific achievements",
    "emphasizing long-term partnership",
)

# Keywords every auto-generated template is anchored on
BASE_CATEGORY_KEYWORDS: Final[tuple[str, ...]] = (
    "excellent service",
    "professional",
    "highly recommended",
    "great experience",
    "outstanding results",
)

MAX_DERIVED_KEYWORDS: Final[int] = 10
REWRITE_KEYWORD_LIMIT: Final[int] = 5

# =============================================================================
# TEMPLATE POOL
# =============================================================================

DEFAULT_TARGET_POOL_SIZE: Final[int] = 10

# Pool replenishment cycles through this ladder from the first entry
DEFAULT_WORD_COUNT_LADDER: Final[tuple[int, ...]] = (20, 30, 40, 50, 60, 70, 80, 90, 100, 120)

# Category batch generation: 4x20, 4x50, 2x100
DEFAULT_CATEGORY_BATCH_WORD_COUNTS: Final[tuple[int, ...]] = (
    20, 20, 20, 20, 50, 50, 50, 50, 100, 100,
)

MAX_REVIEWS_PER_REQUEST: Final[int] = 20
MIN_TARGET_WORD_COUNT: Final[int] = 10
MAX_TARGET_WORD_COUNT: Final[int] = 500
MANUAL_TEMPLATE_WORD_COUNT_RANGE: Final[tuple[int, int]] = (10, 200)

# =============================================================================
# PROVIDER ENDPOINTS & MODEL CATALOG
# =============================================================================

DEFAULT_BASE_URLS: Final[dict[ProviderName, str]] = {
    ProviderName.OPENAI: "https://api.openai.com/v1",
    ProviderName.ANTHROPIC: "https://api.anthropic.com",
    ProviderName.GROQ: "https://api.groq.com/openai/v1",
    ProviderName.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
}

DEFAULT_MODELS: Final[dict[ProviderName, str]] = {
    ProviderName.OPENAI: "gpt-4",
    ProviderName.ANTHROPIC: "claude-3-sonnet-20240229",
    ProviderName.GROQ: "llama-3.3-70b-versatile",
    ProviderName.GOOGLE: "gemini-pro",
}

DISCOVERY_CACHE_TTL_SECONDS: Final[int] = 3600
API_KEY_CACHE_PREFIX_LENGTH: Final[int] = 10

# (model id, display name, context length)
FALLBACK_MODEL_CATALOG: Final[dict[ProviderName, tuple[tuple[str, str, int], ...]]] = {
    ProviderName.OPENAI: (
        ("gpt-4-turbo", "GPT-4 Turbo", 128000),
        ("gpt-4", "GPT-4", 8192),
        ("gpt-3.5-turbo", "GPT-3.5 Turbo", 16385),
        ("gpt-3.5-turbo-16k", "GPT-3.5 Turbo 16K", 16385),
    ),
    ProviderName.ANTHROPIC: (
        ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet (Latest)", 200000),
        ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku (Latest)", 200000),
        ("claude-3-opus-20240229", "Claude 3 Opus", 200000),
        ("claude-3-sonnet-20240229", "Claude 3 Sonnet", 200000),
        ("claude-3-haiku-20240307", "Claude 3 Haiku", 200000),
    ),
    ProviderName.GROQ: (
        ("llama-3.3-70b-versatile", "Llama 3.3 70B Versatile", 32768),
        ("llama-3.1-70b-versatile", "Llama 3.1 70B Versatile", 32768),
        ("llama-3.1-8b-instant", "Llama 3.1 8B Instant", 8192),
        ("mixtral-8x7b-32768", "Mixtral 8x7B", 32768),
        ("gemma2-9b-it", "Gemma 2 9B IT", 8192),
    ),
    ProviderName.GOOGLE: (
        ("gemini-1.5-pro", "Gemini 1.5 Pro", 1000000),
        ("gemini-1.5-flash", "Gemini 1.5 Flash", 1000000),
        ("gemini-pro", "Gemini Pro", 32768),
    ),
}
