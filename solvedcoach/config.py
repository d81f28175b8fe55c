"""
Centralized Configuration Module for solvedcoach.

All configurable constants, timeouts, weights, and limits are defined here.
Import from this module instead of hardcoding values.
"""

import os

# =============================================================================
# CATALOG (solved.ac) API CONFIGURATION
# =============================================================================

SOLVED_AC_API_BASE_URL = "https://solved.ac/api/v3"
CATALOG_TIMEOUT = 15  # seconds
CATALOG_PROFILE_TIMEOUT = 10  # seconds
CATALOG_MAX_RETRIES = 1  # failures are reported to the caller, not retried
# backoff between attempts only applies when a client is built with max_retries > 1
CATALOG_RETRY_DELAY = 1.0  # seconds (exponential backoff base)

CATALOG_PAGE_SIZE = 50  # fixed by solved.ac
CATALOG_LOOKUP_BATCH_SIZE = 100

# Pauses between sequential calls of one bulk operation
CATALOG_BULK_DELAY = 0.6  # seconds
TAG_LIST_DELAY = 0.4  # seconds
GENERATION_CALL_INTERVAL = 0.2  # seconds between searches while generating

# =============================================================================
# JUDGE (BOJ) STATUS PAGE
# =============================================================================

BOJ_BASE_URL = "https://www.acmicpc.net"
BOJ_ACCEPTED_RESULT_ID = 4
SCRAPER_TIMEOUT = 15  # seconds
SCRAPER_MAX_PAGES = 20
SCRAPER_ROWS_PER_PAGE = 20
SCRAPER_PAGE_DELAY = 0.8  # seconds
SCRAPER_USER_AGENT = "Mozilla/5.0 (compatible; solvedcoach/1.0)"

# BOJ handle validation pattern
BOJ_HANDLE_PATTERN = r"^[a-zA-Z0-9_]{1,20}$"

# =============================================================================
# CACHE CONFIGURATION
# =============================================================================

CACHE_TTL_SECONDS = 6 * 60 * 60  # 6 hours
CACHE_MAX_ENTRIES = 1000
TAG_EXPECTATION_TTL_SECONDS = 12 * 60 * 60  # tag populations change slowly

# =============================================================================
# LEVELS / TIERS
# =============================================================================

MIN_LEVEL = 1
MAX_LEVEL = 30
MASTER_TIER = 31

TIER_GROUPS = ["Bronze", "Silver", "Gold", "Platinum", "Diamond", "Ruby"]
TIER_STEPS = ["V", "IV", "III", "II", "I"]

TIER_COLORS = [
    (5, "#AD5600"),   # Bronze
    (10, "#435F7A"),  # Silver
    (15, "#EC9A00"),  # Gold
    (20, "#27E2A4"),  # Platinum
    (25, "#00B4FC"),  # Diamond
]
UNRATED_COLOR = "#2D2D2D"
RUBY_COLOR = "#FF0062"


def get_tier_name(tier: int) -> str:
    """Get the display name for a solved.ac tier/level number."""
    if tier <= 0:
        return "Unrated"

    group_index = (tier - 1) // 5
    step_index = (tier - 1) % 5

    if group_index >= len(TIER_GROUPS):
        return "Master"

    return f"{TIER_GROUPS[group_index]} {TIER_STEPS[step_index]}"


def get_tier_color(tier: int) -> str:
    """Get the badge colour for a tier."""
    if tier <= 0:
        return UNRATED_COLOR
    for upper, color in TIER_COLORS:
        if tier <= upper:
            return color
    return RUBY_COLOR


def clamp_level(level: int) -> int:
    """Clamp a level into the searchable 1..30 band."""
    return max(MIN_LEVEL, min(MAX_LEVEL, level))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (solved.ac style), not to even."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)

# =============================================================================
# WEAKNESS SCORING WEIGHTS
# =============================================================================

WEAKNESS_WEIGHTS = {
    "coverage": 0.25,
    "level_gap": 0.25,
    "recency": 0.20,
    "ceiling": 0.20,
    "consistency": 0.10,
}

RECENCY_WINDOW_DAYS = 90
LEVEL_GAP_SCALE = 10
CEILING_HEADROOM = 3
CONSISTENCY_BAND = 3
CONSISTENCY_LOWER_FACTOR = 1.5
INSUFFICIENT_DATA_SCORE = 0.5

# Fallback expected solve count when no tag population is known:
# round(FALLBACK_BASE_COUNT + tier * FALLBACK_COUNT_PER_TIER)
FALLBACK_BASE_COUNT = 15
FALLBACK_COUNT_PER_TIER = 1.5

# Dynamic tag expectations derived from tag problem counts
EXPECTATION_SHARE = 0.02
EXPECTATION_MIN_COUNT = 10
EXPECTATION_MAX_COUNT = 50
EXPECTATION_DEFAULT_POPULATION = 100

# =============================================================================
# RECOMMENDATION SCORING
# =============================================================================

RECOMMENDATION_WEIGHTS = {
    "tag_weakness": 0.30,
    "level_fitness": 0.25,
    "step_progress": 0.20,
    "problem_quality": 0.15,
    "diversity": 0.10,
}

CATEGORY_LIMITS = {
    "weakness": 24,
    "challenge": 12,
    "review": 12,
    "popular": 12,
    "foundation": 10,
}

MIN_RECOMMENDATION_COUNT = 40

WEAK_TAG_COUNT = 10
CHALLENGE_TAG_COUNT = 5
CHALLENGE_PER_TAG = 3
CHALLENGE_DISCOUNT = 0.9
REVIEW_TAG_COUNT = 5
REVIEW_PER_TAG = 3
REVIEW_RECENCY_THRESHOLD = 0.5
FOUNDATION_TAG_COUNT = 3
FOUNDATION_PER_TAG = 2
FOUNDATION_COVERAGE_THRESHOLD = 0.6
FOUNDATION_MAX_LEVEL = 10

STEP_SIZE = 2
BACKFILL_MAX_PAGES = 6

# =============================================================================
# REALTIME QUERIES
# =============================================================================

DEFAULT_RECOMMENDATION_LIMIT = 120
MAX_RECOMMENDATION_LIMIT = 300
REALTIME_TAG_POOL_SIZE = 12
REALTIME_MAX_PAGES = 4
REALTIME_LEVEL_WINDOW = 6
DEFAULT_AVG_LEVEL = 8

# Used when a user has neither explicit tags nor stored weakness stats
DEFAULT_TAG_POOL = ["implementation", "data_structures", "graphs", "greedy", "dp"]

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# =============================================================================
# TAG NORMALIZATION MAP
# =============================================================================

# Maps common aliases to solved.ac tag keys
TAG_NORMALIZATION_MAP = {
    "dp": "dp",
    "dynamic programming": "dp",
    "greedy": "greedy",
    "implementation": "implementation",
    "math": "math",
    "number theory": "number_theory",
    "graphs": "graphs",
    "graph": "graphs",
    "graph theory": "graphs",
    "trees": "trees",
    "tree": "trees",
    "binary search": "binary_search",
    "data structures": "data_structures",
    "ds": "data_structures",
    "string": "string",
    "strings": "string",
    "geometry": "geometry",
    "sorting": "sorting",
    "sortings": "sorting",
    "brute force": "bruteforcing",
    "bruteforce": "bruteforcing",
    "bfs": "bfs",
    "dfs": "dfs",
    "graph traversal": "graph_traversal",
    "two pointers": "two_pointer",
    "two pointer": "two_pointer",
    "bitmask": "bitmask",
    "bitmasks": "bitmask",
    "combinatorics": "combinatorics",
    "divide and conquer": "divide_and_conquer",
    "shortest path": "shortest_path",
    "shortest paths": "shortest_path",
    "dijkstra": "dijkstra",
    "segment tree": "segtree",
    "segtree": "segtree",
    "prefix sum": "prefix_sum",
    "backtracking": "backtracking",
    "dsu": "disjoint_set",
    "disjoint set": "disjoint_set",
    "union find": "disjoint_set",
    "hashing": "hashing",
    "simulation": "simulation",
    "constructive": "constructive",
    "games": "game_theory",
    "game theory": "game_theory",
    "flow": "flow",
    "flows": "flow",
}


def normalize_tag(tag: str) -> str:
    """Normalize a tag name or alias to a solved.ac tag key."""
    tag_lower = tag.lower().strip()
    if tag_lower in TAG_NORMALIZATION_MAP:
        return TAG_NORMALIZATION_MAP[tag_lower]
    return tag_lower.replace(" ", "_")


def normalize_tags(tags) -> list:
    """Normalize a list of tags, dropping blanks and duplicates in order."""
    if not tags:
        return []
    seen = set()
    unique_tags = []
    for t in tags:
        if not t or not t.strip():
            continue
        key = normalize_tag(t)
        if key not in seen:
            seen.add(key)
            unique_tags.append(key)
    return unique_tags
