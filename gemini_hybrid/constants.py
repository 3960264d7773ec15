"""
Project-wide constants for gemini-hybrid

Defaults for every tunable live here; HybridSettings exposes them as
configuration.
"""

# Complexity analysis
DEFAULT_COMPLEXITY_THRESHOLD = 5.0
DEFAULT_UNION_PENALTY = 2.0
DEFAULT_NESTED_WEIGHT = 0.5  # weight of properties below the root
DEFAULT_MAX_ANALYSIS_DEPTH = 3

# Structured output below this many characters is treated as truncated
DEFAULT_MIN_STRUCTURED_CHARS = 50

# Schema coercion
MAX_REF_DEPTH = 8  # recursive $ref chains are cut here

# Sessions
DEFAULT_MAX_STATEFUL_SESSIONS = 2
DEFAULT_MODEL = "gemini-2.0-flash"

# Native availability states that allow a session to be created right away
NATIVE_READY_STATES = frozenset({"available", "readily"})

# Stateless context budget
CONTEXT_ELISION_NOTICE = "[{count} earlier message(s) omitted to fit the context budget]"

# Telemetry scope names
T_GENERATION_STRUCTURED = "generation.structured"
T_GENERATION_PLAINTEXT = "generation.plaintext"
T_GENERATION_BARE = "generation.bare"
T_GENERATION_UNCONSTRAINED = "generation.unconstrained"
T_CACHE_HIT = "cache.hit"
T_CACHE_MISS = "cache.miss"
T_SYSTEM_PROMPT_SENT = "session.system_prompt_sent"
T_SCHEMA_INSTRUCTIONS_SENT = "session.schema_instructions_sent"
T_SESSION_FAILOVER = "session.failover"
