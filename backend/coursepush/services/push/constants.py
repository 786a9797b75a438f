"""
Constants for recipient resolution and the FCM delivery gateway.
"""

# Topic names are "<partner><separator><environment>", e.g. "poc1-release"
TOPIC_SEPARATOR = "-"

# Target types, also used as the "type" field of /push responses
TARGET_INDIVIDUAL = "individual"
TARGET_COURSE = "course"
TARGET_VERSION = "specific-version"
TARGET_TOPIC = "general-topic"

# FCM send_each_for_multicast accepts at most 500 tokens per call
FCM_MULTICAST_LIMIT = 500

# Retry configuration for transient provider errors
RETRY_BASE_DELAY_SECONDS = 1  # Exponential backoff: 1s, 2s, 4s

# Firebase app names are namespaced per partner
FIREBASE_APP_PREFIX = "coursepush"

# Roster provisioned when no ROSTER_FILE is configured: student id -> courses
DEFAULT_ROSTER = {
    "poc1qa123456": ["123"],
    "poc1staging123456": ["456"],
    "poc1release123456": ["789"],
    "poc2qa123456": ["321"],
    "poc2staging123456": ["654"],
    "poc2release123456": ["987"],
}
