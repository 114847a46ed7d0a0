"""
Application constants for the reputation engine.

Centralizes review lifecycle timings, aggregate weighting tables,
rank thresholds and badge criteria used across services.
"""

# Review content limits
REVIEW_TEXT_MIN_LENGTH = 1
REVIEW_TEXT_MAX_LENGTH = 1000
REPLY_MAX_LENGTH = 1000
REPORT_REASON_MAX_LENGTH = 500
MIN_RATING = 1
MAX_RATING = 5
PLACEHOLDER_RATING = 0  # PENDING rows carry no rating yet
PLACEHOLDER_COMMENT = "Review pending"
INITIAL_RATING = 5  # Every new account starts with one 5-star system review
INITIAL_COMMENT = "Welcome to the platform! Initial rating."

# Aggregate computation
AGGREGATE_MIN_REVIEWS = 3  # average_rating stays null below this
RECENT_REVIEWS_LIMIT = 3  # shown on user summary

# (max months since publication, weight); older than the last bucket -> AGE_WEIGHT_FLOOR
AGE_WEIGHT_BUCKETS = [
    (6, 1.0),
    (12, 0.8),
    (24, 0.6),
    (36, 0.4),
]
AGE_WEIGHT_FLOOR = 0.2

# (max months since newest review, bonus)
RECENCY_BONUS_BUCKETS = [
    (3, 1.0),
    (6, 0.8),
    (12, 0.6),
]
RECENCY_BONUS_FLOOR = 0.4

# (min review count, bonus), checked top-down
VOLUME_BONUS_BUCKETS = [
    (10, 1.0),
    (5, 0.8),
    (3, 0.6),
    (1, 0.4),
]

WEIGHTED_SCORE_AVERAGE_SHARE = 0.7
WEIGHTED_SCORE_RECENCY_SHARE = 0.2
WEIGHTED_SCORE_VOLUME_SHARE = 0.1

# Summary buckets (months)
SUMMARY_RECENT_MONTHS = 12
SUMMARY_MEDIUM_MONTHS = 24

# Rank points
RANK_MIN_REVIEWS = 3  # Gate for any tier above NEW_USER
RANK_ACCOUNT_AGE_POINTS_PER_DAY = 0.5
RANK_ACCOUNT_AGE_MAX_POINTS = 100
RANK_POINTS_PER_REVIEW = 10
RANK_POINTS_PER_RATING_STAR = 5
RANK_POINTS_PER_STAGE = 15
RANK_POINTS_PER_PROPERTY = 20
RANK_POINTS_PER_ACTIVE_LEASE = 25
RANK_POINTS_PER_COMPLETED_LEASE_LANDLORD = 30
RANK_POINTS_PER_COMPLETED_LEASE_TENANT = 35
RANK_ACTIVITY_BONUS_WEEK = 20  # active within 7 days
RANK_ACTIVITY_BONUS_MONTH = 10  # active within 30 days

# Thresholds, highest first
LANDLORD_RANK_THRESHOLDS = [
    ("DIAMOND_LANDLORD", 500),
    ("PLATINUM_LANDLORD", 300),
    ("GOLD_LANDLORD", 200),
    ("SILVER_LANDLORD", 100),
    ("BRONZE_LANDLORD", 50),
]
TENANT_RANK_THRESHOLDS = [
    ("PLATINUM_TENANT", 400),
    ("GOLD_TENANT", 250),
    ("SILVER_TENANT", 150),
    ("BRONZE_TENANT", 75),
]

# Trust level score
TRUST_POINTS_PER_REVIEW = 1.6
TRUST_REVIEW_POINTS_CAP = 40
TRUST_POINTS_PER_RATING_ABOVE_ONE = 10
TRUST_DISPUTE_PENALTY_FACTOR = 0.2
TRUST_DISPUTE_PENALTY_CAP = 20
RESOLVED_DISPUTE_STATUSES = ["RESOLVED", "CLOSED", "DISMISSED"]

# Badges
ON_TIME_WINDOW_MONTHS = 12
ON_TIME_REQUIRED_PERCENT = 100
ACCURACY_MIN_RATING = 4
ACCURACY_REQUIRED_PERCENT = 95
RESPONSE_TIME_MAX_HOURS = 24
COUNTED_PAYMENT_STATUSES = ["PAID", "LATE", "OVERDUE"]

# Batch processing
RECOGNITION_BATCH_SIZE = 100
PUBLISH_BATCH_SIZE = 500
