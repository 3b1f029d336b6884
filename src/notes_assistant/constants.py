"""
Centralized constants for the notes and literature assistant.

This module contains the hard-coded parameter values used throughout the
application: the chat command prefixes, the literature search and sampling
parameters, and the overflow retry tuning. By centralizing these values, we can:

1. Easily understand and tune hyperparameters in one place
2. Ensure consistency across different parts of the codebase
3. Avoid accidentally using different values for the same logical parameter

All constants should be ALL_UPPERCASE and include comments explaining their use.
"""

# === CHAT COMMAND PREFIXES ===

# Lines of previous assistant replies that list the notes used as context.
# They are stripped from every turn before a transcript is parsed.
REF_NOTES_PREFIX = "Ref notes:"

# Full-text search over the notes. The last such line in the last user turn
# restricts the candidate notes to the search hits.
SEARCH_NOTES_CMD = "Search:"

# Explicit note ids (32 alphanumeric characters each) to use as candidates.
USER_NOTES_CMD = "Notes:"

# Replaces the body of the current note when ranking candidates against it.
CONTEXT_CMD = "Context:"

# Text (a regular expression) to remove from the current note before ranking.
# Unlike the other commands, every occurrence in the transcript counts.
NOT_CONTEXT_CMD = "Not context:"

# Note ids are 32 alphanumeric characters.
NOTE_ID_PATTERN = r"[a-zA-Z0-9]{32}"

# Default role markers used to render a chat transcript in a note.
DEFAULT_USER_PREFIX = "User:"
DEFAULT_ASSISTANT_PREFIX = "Assistant:"


# === NOTE RANKING AND ATTACHMENT CONSTANTS ===

# Minimum cosine similarity for a block to be considered relevant. Disabled
# (set to zero) for a turn that names explicit notes or a search query.
NOTES_MIN_SIMILARITY = 0.5

# Blocks shorter than this many characters are ignored by the ranking.
NOTES_MIN_LENGTH = 100

# How block scores are combined into a note score: "max" or "avg".
NOTES_AGG_METHOD = "max"

# Maximum number of ranked hits (blocks for chat, notes for the panel).
NOTES_MAX_HITS = 10

# Number of preceding same-note blocks attached to each ranked block.
NOTES_ATTACH_PREV = 0

# Number of following same-note blocks attached to each ranked block.
NOTES_ATTACH_NEXT = 0

# Number of globally nearest blocks attached to each ranked block.
NOTES_ATTACH_NEAREST = 0


# === TOKEN BUDGET CONSTANTS ===

# Cheap token-count proxy: one token is roughly four characters of English text.
CHARS_PER_TOKEN = 4

# Default context length of the generation model, in tokens.
MAX_TOKENS = 2048

# Default number of tokens of chat transcript and note context sent per request.
MEMORY_TOKENS = 512

# Memory tokens may not exceed this share of max tokens, leaving room for the reply.
MAX_MEMORY_SHARE = 0.45


# === LITERATURE PIPELINE CONSTANTS ===

# Records per page of the bibliographic search API.
PAPERS_PAGE_SIZE = 25

# A failed search page regenerates the query and retries while the number of
# pages attempted stays within this budget. Beyond it, the search is aborted.
SEARCH_RETRY_BUDGET = 2

# Summaries are requested concurrently in batches of this size. Results are
# still consumed strictly in index order.
SUMMARY_BATCH_SIZE = 5

# Default number of search results to sample papers from.
DEFAULT_N_PAPERS = 50

# Default share (percent of max tokens) of the review prompt spent on summaries.
DEFAULT_PAPER_TOKENS_PERCENT = 50

# Timeout, in seconds, for a single bibliographic HTTP request.
HTTP_TIMEOUT_SECONDS = 30

SCOPUS_SEARCH_URL = "https://api.elsevier.com/content/search/scopus"
SCOPUS_ABSTRACT_URL = "https://api.elsevier.com/content/abstract/doi/"
SCIENCEDIRECT_ARTICLE_URL = "https://api.elsevier.com/content/article/doi/"
CROSSREF_WORKS_URL = "https://api.crossref.org/works/"
SCOPUS_SORT_ORDER = "-relevancy,-citedby-count,-pubyear"


# === OVERFLOW RETRY CONSTANTS ===

# Share of the provider's reported limit that a shrunk request may use. The
# remaining 20% is left for the model's reply.
OVERFLOW_HEADROOM = 0.8

# Maximum number of attempts for one provider call, including the first one.
MAX_PROVIDER_ATTEMPTS = 6

# Delay before the second attempt, doubled for every further attempt.
RETRY_BACKOFF_SECONDS = 0.5

# Upper bound on the delay between two attempts.
RETRY_BACKOFF_MAX_SECONDS = 8.0

# System message used when a single-shot prompt is sent to a chat model.
DEFAULT_SYSTEM_PROMPT = "You are a helpful research assistant."
