"""
Text signal helpers for the learning layer.

Pure functions used to enrich tracked actions (edit, feedback and chat
signals) and to inspect slide content for recommendations. All keyword
matching is case-insensitive substring matching.
"""

import re
from collections import Counter
from typing import Iterable, List, Optional

from .constants import (
    CASUAL_WORDS,
    FORMAL_WORDS,
    MIN_FREQUENT_OCCURRENCES,
    MIN_PROBLEM_STRUCTURE_KEYWORDS,
    NEGATIVE_WORDS,
    POSITIVE_WORDS,
    PROBLEM_STRUCTURE_KEYWORDS,
    REQUEST_INTENTS,
)
from .models import ContentAnalysis

BULLET_MARK_PATTERN = re.compile(r"[•\-\*]")
NUMBER_PATTERN = re.compile(r"\d+")
DATA_POINT_PATTERN = re.compile(r"\d+%|\$[\d,]+|[\d,]+\s*(million|billion|thousand)|[\d.]+[xX]")
NUMBERED_LIST_PATTERN = re.compile(r"^\s*\d+\.\s")

DATA_TYPE_PATTERNS = {
    "percentage": re.compile(r"\d+%"),
    "currency": re.compile(r"\$[\d,]+"),
    "metrics": re.compile(r"\d+\s*(users|customers|revenue|growth)", re.IGNORECASE),
    "timeframe": re.compile(r"\d+\s*(months|years|days)", re.IGNORECASE),
    "scale": re.compile(r"\d+\s*(million|billion|thousand)", re.IGNORECASE),
}


def _contains_any(text: str, words: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in words)


# =============================================================================
# Action Enrichment
# =============================================================================

def detect_bullet_addition(before: str, after: str) -> bool:
    """True when the edit increased the number of bullet marks."""
    return len(BULLET_MARK_PATTERN.findall(after)) > len(BULLET_MARK_PATTERN.findall(before))


def detect_number_addition(before: str, after: str) -> bool:
    """True when the edit increased the number of numeric tokens."""
    return len(NUMBER_PATTERN.findall(after)) > len(NUMBER_PATTERN.findall(before))


def detect_tone_change(before: str, after: str) -> Optional[str]:
    """
    Classify a tone shift between two versions of a text.

    Returns more_formal, less_formal, more_casual or less_casual (checked in
    that order), or None when neither keyword family changed presence.
    """
    before_formal = _contains_any(before, FORMAL_WORDS)
    after_formal = _contains_any(after, FORMAL_WORDS)
    before_casual = _contains_any(before, CASUAL_WORDS)
    after_casual = _contains_any(after, CASUAL_WORDS)

    if not before_formal and after_formal:
        return "more_formal"
    if before_formal and not after_formal:
        return "less_formal"
    if not before_casual and after_casual:
        return "more_casual"
    if before_casual and not after_casual:
        return "less_casual"
    return None


def analyze_sentiment(text: str) -> str:
    lowered = (text or "").lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lowered)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lowered)

    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def classify_request(message: str) -> str:
    """Intent of a chat message: improvement, assistance, generation, review or general."""
    lowered = (message or "").lower()
    for intent, keywords in REQUEST_INTENTS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return "general"


# =============================================================================
# Scope Derivation
# =============================================================================

def derive_learning_scope(slide_id: Optional[str], deck_id: Optional[str]) -> str:
    """A slide-level action teaches the deck, a deck-level action the project, anything else global."""
    if slide_id:
        return "deck"
    if deck_id:
        return "project"
    return "global"


# =============================================================================
# Content Inspection
# =============================================================================

def calculate_complexity(content: str) -> float:
    """Average words per sentence / 20 plus the share of words longer than six characters."""
    words = content.split()
    if not words:
        return 0.0

    sentences = content.split(".")
    avg_words_per_sentence = sum(len(s.split()) for s in sentences) / len(sentences)
    complex_ratio = sum(1 for w in words if len(w) > 6) / len(words)
    return avg_words_per_sentence / 20 + complex_ratio


def analyze_content(content: str) -> ContentAnalysis:
    content = content or ""
    return ContentAnalysis(
        length=len(content),
        word_count=len(content.split()),
        has_bullets="•" in content or "-" in content,
        has_numbers=bool(re.search(r"\d", content)),
        has_percentages="%" in content,
        has_currency="$" in content,
        sentence_count=content.count("."),
        complexity=calculate_complexity(content),
    )


def has_data_points(content: str) -> bool:
    return bool(DATA_POINT_PATTERN.search(content or ""))


def has_bullet_points(content: str) -> bool:
    content = content or ""
    return "•" in content or "- " in content or bool(NUMBERED_LIST_PATTERN.search(content))


def has_structured_problem_format(content: str) -> bool:
    """Problem slides read well when they cover situation, pain and impact."""
    lowered = (content or "").lower()
    found = sum(1 for keyword in PROBLEM_STRUCTURE_KEYWORDS if keyword in lowered)
    return found >= MIN_PROBLEM_STRUCTURE_KEYWORDS


def has_data_type(content: str, data_type: str) -> bool:
    pattern = DATA_TYPE_PATTERNS.get(data_type)
    if pattern is None:
        return False
    return bool(pattern.search(content or ""))


def get_frequent_items(items: Iterable[str], min_frequency: int = MIN_FREQUENT_OCCURRENCES) -> List[str]:
    """Items seen at least min_frequency times, in first-seen order."""
    items = [item for item in items if item]
    counts = Counter(items)
    frequent = []
    for item in items:
        if counts[item] >= min_frequency and item not in frequent:
            frequent.append(item)
    return frequent
