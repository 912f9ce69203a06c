"""
Configuration constants for the muvi recommendation engine.

This module centralizes all magic numbers and configurable parameters.
Runtime knobs (paths, timeouts, concurrency) can be overridden via environment
variables; algorithm constants are plain module attributes.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """Integer counterpart of _get_float_env."""
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Storage
DB_PATH = Path(os.environ.get("MUVI_DB", "data/muvi.db"))
DEFAULT_USER = "default"

# Catalog (TMDB) access
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("MUVI_TMDB_BASE_URL", "https://api.themoviedb.org/3")
HTTP_TIMEOUT = _get_float_env("MUVI_HTTP_TIMEOUT", 10.0, min_val=0.5)
PROVIDER_TIMEOUT = _get_float_env("MUVI_PROVIDER_TIMEOUT", 5.0, min_val=0.1)
DEFAULT_MAX_CONCURRENT = _get_int_env("MUVI_MAX_CONCURRENT", 8, min_val=1)
MAX_HTTP_RETRIES = 3
RETRY_INITIAL_DELAY = _get_float_env("MUVI_RETRY_DELAY", 0.5, min_val=0.0)
TRENDING_WINDOW = "week"

# Bounded user state
INTERACTION_LOG_CAPACITY = 500
WATCH_HISTORY_CAPACITY = 100
RECENTLY_COMPLETED_LIMIT = 20
COMPLETED_PROGRESS_THRESHOLD = 90   # history progress that counts as "completed"
WATCH_START_PROGRESS_THRESHOLD = 20  # below this a history write is a watch_start
CONTINUE_WATCHING_MIN = 5
CONTINUE_WATCHING_MAX = 95
CONTINUE_WATCHING_LIMIT = 20

# Preference model
DEFAULT_AFFINITY = 50
AFFINITY_MIN = 0
AFFINITY_MAX = 100
ACTION_WEIGHTS = {
    'complete': 10,
    'watch_progress': 5,
    'watch_start': 3,
    'add_watchlist': 4,
    'download': 6,
    'view': 1,
    'search': 2,
    'abandon': -3,
    'remove_watchlist': -2,
}

# Scoring engine
SCORING_WEIGHTS = {
    'genre_match': 0.35,
    'popularity': 0.20,
    'recency': 0.15,
    'similarity': 0.20,
    'serendipity': 0.10,
}
NEUTRAL_SCORE = 50
POPULARITY_LOG_SCALE = 25
SERENDIPITY_EXPLORATION_FACTOR = 0.3
SERENDIPITY_RANDOM_MAX = 20
DAYS_PER_MONTH = 30

# (months upper bound, score); anything older scores RECENCY_FLOOR
RECENCY_STEPS = [
    (1, 100),
    (3, 90),
    (6, 80),
    (12, 70),
    (24, 60),
    (60, 50),
]
RECENCY_FLOOR = 40

# Reason thresholds
REASON_GENRE_MATCH = 70
REASON_GENRE_AFFINITY = 60  # per-genre affinity needed to be named in a reason
REASON_MAX_GENRES = 2
REASON_RECENCY = 80
REASON_POPULARITY = 70
REASON_SIMILARITY = 60
DEFAULT_REASON = "Popular choice"

# Feed sections
TOP_PICKS_LIMIT = 20
BECAUSE_YOU_WATCHED_LIMIT = 10
TRENDING_IN_GENRE_LIMIT = 10
HIDDEN_GEMS_LIMIT = 10
HIDDEN_GEMS_GENRES = 3
RECENTLY_WATCHED_EXCLUSION = 20
FALLBACK_GENRE_LABEL = "Your Favorites"

# Hidden gems: rating floor and (min, max) vote-count band per media kind
HIDDEN_GEM_RATING_FLOOR = 7.5
HIDDEN_GEM_VOTE_BANDS = {
    'movie': (100, 1000),
    'tv': (50, 500),
}

# Smart hero
HERO_PREFERENCE_WEIGHT = 0.6
HERO_RATING_WEIGHT = 40         # vote_average / 10 * weight for new users
HERO_POPULARITY_DIVISOR = 100
HERO_POPULARITY_CAP = 40
HERO_TIME_MATCH_BONUS = 10      # per genre matching the time-of-day table
HERO_HIGH_RATING = 7.5
HERO_HIGH_RATING_BONUS = 10
HERO_BACKDROP_BONUS = 5
HERO_OVERVIEW_BONUS = 5
HERO_OVERVIEW_RANGE = (100, 400)  # [min, max) characters
HERO_RECENT_EXCLUSION = 10
HERO_TOP_CANDIDATES = 5

# Time-of-day genre preferences (TMDB genre ids)
TIME_OF_DAY_GENRES = {
    'weekend': [35, 10751, 16],     # comedy, family, animation
    'morning': [18, 10749, 35],     # drama, romance, comedy
    'afternoon': [12, 28, 878],     # adventure, action, sci-fi
    'evening': [53, 27, 80, 28],    # thriller, horror, crime, action
}
MORNING_HOURS = (6, 12)
AFTERNOON_HOURS = (12, 18)

# TMDB genre ids (movie and tv lists merged)
GENRE_NAMES = {
    28: 'Action',
    12: 'Adventure',
    16: 'Animation',
    35: 'Comedy',
    80: 'Crime',
    99: 'Documentary',
    18: 'Drama',
    10751: 'Family',
    14: 'Fantasy',
    36: 'History',
    27: 'Horror',
    10402: 'Music',
    9648: 'Mystery',
    10749: 'Romance',
    878: 'Sci-Fi',
    10770: 'TV Movie',
    53: 'Thriller',
    10752: 'War',
    37: 'Western',
    10759: 'Action & Adventure',
    10762: 'Kids',
    10763: 'News',
    10764: 'Reality',
    10765: 'Sci-Fi & Fantasy',
    10766: 'Soap',
    10767: 'Talk',
    10768: 'War & Politics',
}
