"""
Application constants.
"""

# HTTP Status Messages
STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

# Wager periods as stored on records
PERIOD_TODAY = "today"
PERIOD_WEEK = "this_week"
PERIOD_MONTH = "this_month"
PERIOD_ALL_TIME = "all_time"
WAGER_PERIODS = (PERIOD_TODAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_ALL_TIME)

# Leaderboard views exposed over HTTP, mapped to the wager period they rank by
LEADERBOARD_VIEWS = {
    "today": PERIOD_TODAY,
    "weekly": PERIOD_WEEK,
    "monthly": PERIOD_MONTH,
    "all_time": PERIOD_ALL_TIME,
}

# Upstream per-timeframe keys, in merge priority order
UPSTREAM_TIMEFRAMES = ("all_time", "monthly", "weekly", "today")

# Race lifecycle
RACE_UPCOMING = "upcoming"
RACE_LIVE = "live"
RACE_COMPLETED = "completed"
RACE_TYPE_MONTHLY = "monthly"

PRIZE_MODE_PERCENTAGE = "percentage"
PRIZE_MODE_FIXED = "fixed"

# Share of the pool per final position
DEFAULT_PRIZE_DISTRIBUTION = {
    "1": 0.425,
    "2": 0.2,
    "3": 0.15,
    "4": 0.075,
    "5": 0.06,
    "6": 0.04,
    "7": 0.0275,
    "8": 0.0225,
    "9": 0.0175,
    "10": 0.0175,
}

# Transformation log entry types
LOG_INFO = "info"
LOG_WARNING = "warning"
LOG_ERROR = "error"

# WebSocket event types
EVENT_LEADERBOARD_UPDATE = "LEADERBOARD_UPDATE"

# Amount precision used when comparing stored and fresh wager values
WAGER_QUANTUM = "0.00000001"
