"""
Prompt Builder: Deterministic Review Generation Instructions

Renders a GenerationRequest into the natural-language instruction sent to a
provider. Rendering is pure: identical requests always produce byte-identical
prompts, which keeps generation reproducible under test.

Callers that need a richer framing (auto-regeneration, category batches,
single-review rewrites) pre-compose it with the helpers below and pass it either
as the business context or as ``custom_prompt_override``.
"""

from typing import Optional, Sequence, Union

from config.constants import DEFAULT_BUSINESS_DESCRIPTION, LENGTH_WORD_RANGES
from core.enums import ReviewLength
from core.models import Business, Category, GenerationRequest

RESPONSE_FORMAT_INSTRUCTIONS = """Format your response as a JSON array where each object has:
- "text": the review content
- "keywords_used": array of keywords that were naturally included
- "seo_score": estimated SEO score (0-100)"""


def describe_length(length: Union[ReviewLength, int]) -> str:
    """Advisory word-count phrase for a length bucket or explicit target."""
    if isinstance(length, ReviewLength):
        low, high = LENGTH_WORD_RANGES[length]
        return f"{low}-{high}"
    return f"approximately {int(length)}"


def build_prompt(request: GenerationRequest) -> str:
    """
    Render the provider instruction for ``request``.

    A ``custom_prompt_override`` replaces the generated instruction verbatim.
    """
    if request.custom_prompt_override:
        return request.custom_prompt_override

    return f"""You are an expert review writer specializing in SEO-optimized Google reviews. Generate {request.count} authentic, human-like Google reviews for the following business:

Business Context: {request.business_context}
Keywords to include naturally: {', '.join(request.keywords)}
Tone: {request.tone.value}
Length: {describe_length(request.length)} words each

Requirements:
- SEO optimized with keywords naturally integrated (2-3% density)
- Authentic, human-like language that matches a {request.tone.value} tone
- Avoid generic stock phrases like "great service" or "highly recommend"
- Specific details that show genuine experience
- Vary sentence structure and vocabulary between reviews
- Include emotional connection and personal touches
- 5-star worthy content that sounds like real customers
- Each review should be unique and different
- Include local SEO elements when relevant

{RESPONSE_FORMAT_INSTRUCTIONS}

Generate exactly {request.count} unique reviews."""


def compose_business_context(business: Business) -> str:
    return f"{business.name} - {business.description or DEFAULT_BUSINESS_DESCRIPTION}"


def compose_variation_context(base_context: str, word_count: int, angle: str) -> str:
    """Business context steering one review towards a word count and angle."""
    return (
        f"{base_context}. Generate a UNIQUE review with approximately {word_count} words, "
        f"{angle}. Make it different from other reviews by using varied sentence "
        f"structures and perspectives."
    )


def compose_regeneration_context(business: Business, category: Category, word_count: int) -> str:
    """Business context used when replacing a consumed template."""
    return compose_variation_context(
        compose_business_context(business),
        word_count,
        f"focusing on {category.name} services",
    )


def build_rewrite_prompt(
    base_review: str,
    keywords: Sequence[str],
    word_range: Optional[str] = None,
) -> str:
    """Instruction asking for one rewrite of an existing review."""
    word_range = word_range or describe_length(ReviewLength.LONG)
    return f"""Rewrite this review with the same positive sentiment but completely different wording to make it unique and genuine:

"{base_review}"

Requirements:
- Keep the same positive tone and rating (5 stars)
- Include these keywords naturally: {', '.join(keywords)}
- Change the sentence structure and phrasing completely
- Make it sound authentic and personal ({word_range} words)
- DO NOT copy any phrases from the original
- Write as if a real customer wrote it

{RESPONSE_FORMAT_INSTRUCTIONS}

Return a JSON array containing exactly 1 review."""
