"""
Application Constants for the Pitch Deck backend.

Centralizes fixed heuristics, keyword tables and magic numbers used by the
learning layer.

Note: values that vary between environments (timeouts, limits, provider
settings) live in config.py. This file only contains true constants.
"""

# =============================================================================
# Learning Scopes
# =============================================================================

LEARNING_SCOPES = ("deck", "project", "global")

# =============================================================================
# Confidence Increments (per corroborating event)
# =============================================================================

EDIT_CONFIDENCE_INCREMENT = 0.1
FEEDBACK_CONFIDENCE_INCREMENT = 0.2
INPUT_CONFIDENCE_INCREMENT = 0.05
CHAT_CONFIDENCE_INCREMENT = 0.05

MIN_NEW_PATTERN_CONFIDENCE = 0.1
DEFAULT_MANUAL_PATTERN_CONFIDENCE = 0.5
MIN_FREQUENT_OCCURRENCES = 2

# =============================================================================
# Session Summary
# =============================================================================

PRODUCTIVITY_WEIGHTS = {
    "user_edit": 2.0,
    "ai_generation": 1.0,
    "feedback": 1.0,
    "chatbot_interaction": 0.5,
    "user_input": 1.0,
}
PRODUCTIVITY_NORMALIZER = 20.0

# =============================================================================
# Text Signal Keyword Lists
# =============================================================================

FORMAL_WORDS = ("therefore", "furthermore", "consequently", "accordingly")
CASUAL_WORDS = ("really", "pretty", "quite", "basically")

POSITIVE_WORDS = ("good", "great", "excellent", "perfect", "love", "like")
NEGATIVE_WORDS = ("bad", "terrible", "awful", "hate", "dislike", "wrong")

# Checked in order; first match wins
REQUEST_INTENTS = (
    ("improvement", ("improve", "better")),
    ("assistance", ("help", "how")),
    ("generation", ("generate", "create")),
    ("review", ("review", "feedback")),
)

PROBLEM_STRUCTURE_KEYWORDS = ("current", "situation", "pain", "challenge", "impact", "cost")
MIN_PROBLEM_STRUCTURE_KEYWORDS = 3

# =============================================================================
# Behaviour Profile Defaults (used when there is no signal)
# =============================================================================

DEFAULT_WRITING_STYLE = "formal"
DEFAULT_STRUCTURE_PREFERENCE = "mixed"
DEFAULT_TONE_PREFERENCE = "professional"
DEFAULT_DATA_USAGE = "moderate"
DEFAULT_DETAIL_LEVEL = "moderate"

HEAVY_DATA_RATIO = 0.6
MODERATE_DATA_RATIO = 0.3

PERSONALIZATION_FACTOR_WEIGHT = 0.25
MIN_PERSONALIZATION_CONFIDENCE = 0.1

# =============================================================================
# Recommendation Tables
# =============================================================================

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}

CONCISE_WORD_LIMIT = 150
DETAILED_WORD_MINIMUM = 80
CONCISE_SUGGESTION_WORD_LIMIT = 100

SLIDE_DATA_REQUIREMENTS = {
    "market": [
        {
            "type": "currency",
            "priority": "high",
            "suggestion": "Include market size in dollars (TAM/SAM/SOM)",
            "reasoning": "Investors expect quantified market opportunities",
        },
        {
            "type": "percentage",
            "priority": "medium",
            "suggestion": "Add market growth rate percentages",
            "reasoning": "Growth rates demonstrate market momentum",
        },
    ],
    "traction": [
        {
            "type": "metrics",
            "priority": "high",
            "suggestion": "Include specific user/customer metrics",
            "reasoning": "Traction slides require concrete proof points",
        },
        {
            "type": "percentage",
            "priority": "high",
            "suggestion": "Show growth percentages over time",
            "reasoning": "Growth rates demonstrate momentum",
        },
    ],
    "financials": [
        {
            "type": "currency",
            "priority": "high",
            "suggestion": "Include revenue projections and funding amounts",
            "reasoning": "Financial slides must have specific dollar amounts",
        },
        {
            "type": "timeframe",
            "priority": "medium",
            "suggestion": "Specify timeframes for projections",
            "reasoning": "Investors need timeline context",
        },
    ],
}

# =============================================================================
# Context Summary Limits
# =============================================================================

SUMMARY_RECENT_ACTIVITY = 10
SUMMARY_MAX_SLIDES = 5
SUMMARY_RECOMMENDATIONS_PER_SLIDE = 3
