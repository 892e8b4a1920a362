"""Word lists used by query normalization and query classification."""
from __future__ import annotations

STOPWORDS: frozenset[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "if", "then", "than",
    "to", "for", "of", "in", "on", "at", "by", "is", "it",
    "this", "that", "these", "those", "be", "are", "was", "were",
    "as", "with", "from", "you", "your", "i", "we", "they",
    "he", "she", "them", "our", "us",
})

# Hand-tuned list of terms so common on the timeline that a query made mostly
# of them matches thousands of unrelated posts.
GENERIC_QUERY_TERMS: frozenset[str] = frozenset({
    "good", "morning", "night", "day", "today", "tomorrow", "happy", "love",
    "life", "new", "best", "great", "thanks", "thank", "lol", "lmao", "omg",
    "yes", "no", "just", "like", "so", "really", "very", "time", "people",
    "world", "hello", "hi", "gm", "gn", "fun", "nice", "cool", "what",
    "when", "why", "how", "who", "all", "me", "my", "not", "do", "can",
    "get", "got", "going", "go", "now", "one", "more", "back", "week",
    "weekend", "year", "vibes", "mood",
}) | STOPWORDS

MAX_KEYWORD_TOKENS = 8
KEYWORD_WINDOW_TOKENS = 6
