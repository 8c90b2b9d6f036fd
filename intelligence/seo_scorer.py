"""
SEO Scorer: Deterministic Review Quality Heuristic

Computes a reproducible 0-100 score for review text against a keyword set.
The model's own self-assessment is never trusted; every generated review is
re-scored here.

Sub-scores (points):
- Keyword coverage (30): share of keywords present in the text
- Keyword density (20): optimal band of 2-3% keyword occurrences per word
- Length fit (15): optimal band of 100-150 words
- Readability (20): Flesch Reading Ease scaled to the point budget
- Uniqueness (15): absence of generic stock phrases

All functions are pure and never raise on empty input.
"""

import math
import re
from dataclasses import dataclass
from typing import Sequence

from config.constants import FLESCH, GENERIC_STOCK_PHRASES, SEO_WEIGHTS, VOWELS

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class SEOScoreBreakdown:
    """Individual sub-scores; ``total`` is the rounded, clamped sum."""

    keyword_coverage: float
    keyword_density: float
    length_fit: float
    readability: float
    uniqueness: float

    @property
    def raw_total(self) -> float:
        return (
            self.keyword_coverage
            + self.keyword_density
            + self.length_fit
            + self.readability
            + self.uniqueness
        )

    @property
    def total(self) -> int:
        # Half-up rounding, matching the scores stored by earlier releases
        return min(100, max(0, int(math.floor(self.raw_total + 0.5))))


def _words(text: str) -> list[str]:
    return text.split()


def _normalize_keywords(keywords: Sequence[str]) -> list[str]:
    return [keyword.strip().lower() for keyword in keywords if keyword and keyword.strip()]


def count_syllables(word: str) -> int:
    """
    Approximate syllables by counting vowel groups.

    Words of three characters or fewer count as one syllable; a trailing
    ``e`` is treated as silent. Never returns less than 1.
    """
    word = word.lower()
    if len(word) <= 3:
        return 1

    count = 0
    previous_was_vowel = False
    for char in word:
        is_vowel = char in VOWELS
        if is_vowel and not previous_was_vowel:
            count += 1
        previous_was_vowel = is_vowel

    if word.endswith("e"):
        count -= 1
    return max(1, count)


def calculate_readability(text: str) -> float:
    """Flesch Reading Ease clamped to [0, 100]; 0 for text without words or sentences."""
    sentences = [s for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]
    words = _words(text)
    if not sentences or not words:
        return 0.0

    syllables = sum(count_syllables(word) for word in words)
    avg_words_per_sentence = len(words) / len(sentences)
    avg_syllables_per_word = syllables / len(words)

    score = (
        FLESCH.BASE
        - FLESCH.SENTENCE_LENGTH_WEIGHT * avg_words_per_sentence
        - FLESCH.SYLLABLE_WEIGHT * avg_syllables_per_word
    )
    return max(0.0, min(100.0, score))


def calculate_uniqueness(text: str) -> float:
    """Fraction in [0, 1] of stock phrases that do NOT appear in the text."""
    text_lower = text.lower()
    found = sum(1 for phrase in GENERIC_STOCK_PHRASES if phrase in text_lower)
    return max(0.0, 1.0 - found / len(GENERIC_STOCK_PHRASES))


def keyword_coverage_score(text: str, keywords: Sequence[str]) -> float:
    normalized = _normalize_keywords(keywords)
    if not text or not normalized:
        return 0.0
    text_lower = text.lower()
    found = sum(1 for keyword in normalized if keyword in text_lower)
    return SEO_WEIGHTS.KEYWORD_COVERAGE * found / len(normalized)


def keyword_density(text: str, keywords: Sequence[str]) -> float:
    """Occurrences of matched keywords per 100 words."""
    normalized = _normalize_keywords(keywords)
    total_words = len(_words(text))
    if not normalized or total_words == 0:
        return 0.0
    text_lower = text.lower()
    occurrences = sum(text_lower.count(keyword) for keyword in normalized if keyword in text_lower)
    return occurrences / total_words * 100


def keyword_density_score(text: str, keywords: Sequence[str]) -> float:
    if not text.strip() or not _normalize_keywords(keywords):
        return 0.0
    density = keyword_density(text, keywords)
    if SEO_WEIGHTS.DENSITY_OPTIMAL_MIN <= density <= SEO_WEIGHTS.DENSITY_OPTIMAL_MAX:
        return SEO_WEIGHTS.KEYWORD_DENSITY
    penalty = abs(density - SEO_WEIGHTS.DENSITY_TARGET) * SEO_WEIGHTS.DENSITY_PENALTY_PER_POINT
    return max(0.0, SEO_WEIGHTS.KEYWORD_DENSITY - penalty)


def length_fit_score(text: str) -> float:
    total_words = len(_words(text))
    if SEO_WEIGHTS.LENGTH_OPTIMAL_MIN <= total_words <= SEO_WEIGHTS.LENGTH_OPTIMAL_MAX:
        return SEO_WEIGHTS.LENGTH_FIT
    penalty = abs(total_words - SEO_WEIGHTS.LENGTH_TARGET) * SEO_WEIGHTS.LENGTH_PENALTY_PER_WORD
    return max(0.0, SEO_WEIGHTS.LENGTH_FIT - penalty)


def score_breakdown(text: str, keywords: Sequence[str]) -> SEOScoreBreakdown:
    """Compute every sub-score for ``text`` against ``keywords``."""
    text = text or ""
    return SEOScoreBreakdown(
        keyword_coverage=keyword_coverage_score(text, keywords),
        keyword_density=keyword_density_score(text, keywords),
        length_fit=length_fit_score(text),
        readability=calculate_readability(text) / 100 * SEO_WEIGHTS.READABILITY,
        uniqueness=calculate_uniqueness(text) * SEO_WEIGHTS.UNIQUENESS,
    )


def compute_seo_score(text: str, keywords: Sequence[str]) -> int:
    """SEO score in [0, 100] for ``text`` against ``keywords``."""
    return score_breakdown(text, keywords).total
