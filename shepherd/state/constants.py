"""
Game formulas and validation limits.

Balance tuning happens here. Every reward, idle and level computation
reads its coefficients from this module.
"""

# Reward calculation
SOUL_INSIGHT_BASE_MULTIPLIER = 10
SOUL_INSIGHT_SPIRIT_BONUS = 0.1

SOUL_EMBERS_BASE_MULTIPLIER = 2
SOUL_EMBERS_SOULFLOW_BONUS = 0.05

BOSS_DAMAGE_MULTIPLIER = 0.5

CRITICAL_HIT_MULTIPLIER = 1.5
COMPROMISE_PENALTY_MULTIPLIER = 0.7
EMERGENCY_END_PENALTY_MULTIPLIER = 0.5

# A session whose idle time exceeds this share of its planned duration is compromised
IDLE_TIME_COMPROMISE_RATIO = 0.25

# Idle collection
IDLE_COLLECTION_BASE_RATE = 1           # Content Souls per interval
IDLE_COLLECTION_INTERVAL_MINUTES = 5
IDLE_COLLECTION_SOULFLOW_BONUS = 0.1
CONTENT_SOUL_TO_EMBERS = 5

# Level progression
LEVEL_THRESHOLD_BASE = 100
LEVEL_THRESHOLD_EXPONENT = 1.5
SKILL_POINTS_PER_LEVEL = 1
MAX_SOUL_INSIGHT = 1e18         # Level ~4.6e10; keeps threshold gaps well above float resolution
MAX_LEVEL = 10 ** 12

# Stat upgrades (priced in Soul Embers)
STAT_UPGRADE_BASE_COST = 10
STAT_UPGRADE_COST_MULTIPLIER = 1.5
HARMONY_STEP = 0.01
STAT_STEP = 1

# Input limits
MIN_SESSION_DURATION = 5       # Minutes
MAX_SESSION_DURATION = 120
MIN_BREAK_DURATION = 1
MAX_BREAK_DURATION = 30
MIN_IDLE_THRESHOLD = 15        # Seconds
DEFAULT_IDLE_THRESHOLD = 120


def level_threshold(level: int) -> float:
    """
    Cumulative Soul Insight at which a player reaches `level`.

    100 * level^1.5, unrounded: 100, 282.84..., 519.61..., ...
    """
    return LEVEL_THRESHOLD_BASE * level ** LEVEL_THRESHOLD_EXPONENT


def level_for_insight(soul_insight: float) -> int:
    """
    Highest level whose threshold `soul_insight` has reached, at least 1.

    Closed form of the inverse of level_threshold. The float root can land
    one level off near a boundary, so the result is checked against the
    exact thresholds.
    """
    level = max(1, int((soul_insight / LEVEL_THRESHOLD_BASE) ** (1 / LEVEL_THRESHOLD_EXPONENT)))
    if level > 1 and level_threshold(level) > soul_insight:
        level -= 1
    elif level_threshold(level + 1) <= soul_insight:
        level += 1
    return level
