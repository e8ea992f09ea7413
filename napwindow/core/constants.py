"""Age-based nap heuristics and sleep-window tuning constants."""

# ── AGE PROFILES ─────────────────────────────────────────────────────────────
# No clinical source, app-level heuristics. Rows are ordered by ascending
# max_age_months; the last row has no upper bound.
#   base_windows_minutes  → awake time before nap N of the day (1-based)
#   nap_durations_minutes → expected length of nap N of the day
#   daily_target_minutes  → total sleep target over a rolling 24h
#
# NOTE: windows/durations are parallel lists. Nap indices beyond the list
# length reuse the last entry.
AGE_PROFILE_ROWS = [
    # max_months, base_windows,           nap_durations,        daily_target
    (3,            (60, 75, 90, 105),     (60, 70, 80, 60),     960),  # 16h
    (5,            (90, 105, 120, 135),   (75, 90, 90, 60),     930),  # 15.5h
    (8,            (120, 150, 180),       (90, 105, 90),        870),  # 14.5h
    (12,           (150, 210),            (100, 100),           780),  # 13h
    (18,           (210, 240),            (105, 105),           750),  # 12.5h
    (float("inf"), (240,),                (120,),               720),  # 12h
]

# Index into AGE_PROFILE_ROWS used when the birthdate is missing or unparseable.
DEFAULT_AGE_PROFILE_INDEX = 1

DEFAULT_WINDOW_MINUTES = 90
DEFAULT_TARGET_NAP_DURATION_MINUTES = 90


# ── ENTRY FILTERING ──────────────────────────────────────────────────────────
# Engineering choice, filters accidental taps / immediately cancelled sessions.
MIN_VALID_SLEEP_MINUTES = 5


# ── WINDOW BOUNDS ────────────────────────────────────────────────────────────
MIN_WINDOW_MINUTES = 30
MAX_WINDOW_MINUTES = 300


# ── ADJUSTMENTS ──────────────────────────────────────────────────────────────
# No clinical source, app-level tuning.
NAP_DURATION_ADJUSTMENT_SCALE = 20
NAP_DURATION_ADJUSTMENT_MAX = 20

SLEEP_DEBT_THRESHOLD_MINUTES = 30
SLEEP_DEBT_DIVISOR = 15
SLEEP_DEBT_ADJUSTMENT_MAX = 20


# ── FLEX BAND ────────────────────────────────────────────────────────────────
EARLY_FLEX_MIN_MINUTES = 15
EARLY_FLEX_MAX_MINUTES = 30
EARLY_FLEX_RATIO = 0.25

LATE_FLEX_MIN_MINUTES = 20
LATE_FLEX_MAX_MINUTES = 35
LATE_FLEX_RATIO = 0.30


# ── AWAKE OVERRIDE ───────────────────────────────────────────────────────────
# Overrun grace: awake this much past the adjusted window → nap right away.
AWAKE_OVERRUN_GRACE_MINUTES = 15
# Soft override starts this many minutes before the adjusted window ends.
AWAKE_SOFT_OVERRIDE_LEAD_MINUTES = 10
AWAKE_IMMEDIATE_MINUTES = 5


# ── BEDTIME ANCHOR ───────────────────────────────────────────────────────────
BEDTIME_GAP_MINUTES = 120
# An anchor earlier than now by more than this refers to tomorrow.
BEDTIME_ANCHOR_ROLLOVER_HOURS = 6

# Age-based gap, used only when dynamic bedtime gap is enabled.
# (upper_bound_months_exclusive, gap_minutes)
DYNAMIC_BEDTIME_GAPS = [
    (4, 75),
    (6, 90),
    (9, 120),
    (12, 150),
]
DYNAMIC_BEDTIME_GAP_DEFAULT = 180
DYNAMIC_BEDTIME_GAP_UNKNOWN_AGE = 90
DYNAMIC_BEDTIME_GAP_LAST_NAP_EXTRA = 15


# ── TIME OF DAY BUCKETS ──────────────────────────────────────────────────────
# hour < 11 → morning, < 14 → midday, < 18 → afternoon, else evening
BUCKET_MORNING_END = 11
BUCKET_MIDDAY_END = 14
BUCKET_AFTERNOON_END = 18


# ── CIRCADIAN FACTOR (opt-in) ────────────────────────────────────────────────
# No clinical source. Same awake time feels longer late in the day.
# (hour_exclusive_upper_bound, factor)
CIRCADIAN_FACTORS = [
    (9, 1.05),
    (13, 1.00),
    (16, 0.95),
    (18, 0.90),
]
CIRCADIAN_EVENING_FACTOR = 0.85


# ── HISTORICAL WAKE WINDOWS (opt-in) ─────────────────────────────────────────
HISTORICAL_LOOKBACK_DAYS = 14
HISTORICAL_MIN_AGE_DAYS = 1
HISTORICAL_MIN_SAMPLES = 5
HISTORICAL_TRIM_FRACTION = 0.15
HISTORICAL_MIN_WAKE_WINDOW_MINUTES = 30
HISTORICAL_MAX_WAKE_WINDOW_MINUTES = 360
HISTORICAL_FACTOR_MIN = 0.9
HISTORICAL_FACTOR_MAX = 1.1


# ── PERSONALIZATION ──────────────────────────────────────────────────────────
PERSONALIZATION_ALPHA = 0.3
PERSONALIZATION_CLAMP_MINUTES = 60
PERSONALIZATION_MAX_SAMPLES = 50

