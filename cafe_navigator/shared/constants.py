"""
Centralized Constants
=====================
All magic numbers and hardcoded values extracted to one place.
"""

# ==============================================================================
# LANGUAGES
# ==============================================================================

LANG_JA = "ja"
LANG_EN = "en"
SUPPORTED_LANGUAGES = (LANG_JA, LANG_EN)
DEFAULT_LANGUAGE = LANG_JA  # Primary language of the facility

LANGUAGE_CONFIDENCE_CAP = 0.95
LANGUAGE_EXACT_MATCH_CONFIDENCE = 0.99
LANGUAGE_BASE_CONFIDENCE = 0.6
LANGUAGE_UNKNOWN_CONFIDENCE = 0.5


# ==============================================================================
# CONVERSATION MEMORY
# ==============================================================================

MEMORY_TTL_SECONDS = 180  # 3 minutes of conversational window
MEMORY_MAX_ENTRIES = 100  # Max timestamps kept in the turn index
MEMORY_DEFAULT_NAMESPACE = "shared"
CLARIFICATION_LOOKBACK_TURNS = 3  # Assistant turns inspected for clarification markers


# ==============================================================================
# RETRIEVAL
# ==============================================================================

RAG_DEFAULT_LIMIT = 5
RAG_DEFAULT_THRESHOLD = 0.3
RAG_CANDIDATE_MULTIPLIER = 5  # limit x k candidates for post-hoc filtering

# Single threshold-lowering retry
RAG_RETRY_MIN_THRESHOLD = 0.1
RAG_RETRY_THRESHOLD_STEP = 0.2
RAG_RETRY_TRIGGER_THRESHOLD = 0.2  # Retry only when the original threshold exceeds this

# Multi-language mode
MULTI_LANG_PRIMARY_LIMIT = 10
MULTI_LANG_PRIMARY_THRESHOLD = 0.2
MULTI_LANG_SECONDARY_LIMIT = 5

CONTEXT_MAX_RESULTS = 5  # Entries rendered into the context string


# ==============================================================================
# EMBEDDINGS
# ==============================================================================

EMBEDDING_MODEL_V1 = "text-embedding-ada-002"  # 1536 dims
EMBEDDING_MODEL_V2 = "gemini/text-embedding-004"  # 768 dims
EMBEDDING_TARGET_DIMENSION = 1536
EMBEDDING_RECONCILIATION_DUPLICATE = "duplicate"
EMBEDDING_RECONCILIATION_ZERO_PAD = "zero_pad"
EMBEDDING_RECONCILIATION_STRATEGIES = (
    EMBEDDING_RECONCILIATION_DUPLICATE,
    EMBEDDING_RECONCILIATION_ZERO_PAD,
)


# ==============================================================================
# PRIORITY SCORING
# ==============================================================================

IMPORTANCE_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}
SPECIFICITY_SIMILARITY_MARGIN = 0.2  # Similarity gap that overrides importance
ENTITY_PRIORITY_WEIGHT = 0.3
IMPORTANCE_WEIGHT = 0.1
SUBSTRING_BOOST = 0.2


# ==============================================================================
# ROUTING / CIRCUIT BREAKER
# ==============================================================================

IMPLEMENTATION_V1 = "v1"
IMPLEMENTATION_V2 = "v2"

BREAKER_FAILURE_THRESHOLD = 5
BREAKER_RECOVERY_SECONDS = 60.0
BREAKER_FAILURE_WINDOW_SECONDS = 300.0  # Sliding window for counting failures
BREAKER_HALF_OPEN_MAX_CALLS = 1

COMPARISON_HISTORY_SIZE = 100


# ==============================================================================
# METRICS
# ==============================================================================

METRICS_WINDOW_SIZE = 1000
METRICS_MIN_SAMPLES_FOR_RECOMMENDATION = 10
METRICS_P95 = 0.95


# ==============================================================================
# DEFAULT RESPONSES
# ==============================================================================

DEFAULT_NO_INFORMATION = {
    LANG_JA: "申し訳ございませんが、関連する情報が見つかりませんでした。",
    LANG_EN: "Sorry, I couldn't find any relevant information.",
}

CLARIFICATION_EMOTION = "surprised"
