"""Internal constants shared across the library."""

DIRECTORY_URL = "https://supercharge.info/service/supercharge/allSites"
AUTH_URL = "https://identitytoolkit.googleapis.com/v1"
USER_AGENT = "chargelog/0.1"

EXPORT_FORMAT_VERSION = "1.0"
EXPORT_FILENAME_PREFIX = "charging-visits"

SEARCH_LIMIT = 8
MIN_QUERY_LENGTH = 2

VISIT_ORDER_FIELD = "visitDate"
VEHICLE_ORDER_FIELD = "createdAt"

UNASSIGNED_VEHICLE_LABEL = "Unassigned"

# ------------------------------------------------------------------
# Auth provider error codes → user-facing messages
# ------------------------------------------------------------------

AUTH_ERROR_MESSAGES: dict[str, str] = {
    "auth/user-not-found": "No account found with this email address.",
    "auth/wrong-password": "Incorrect password.",
    "auth/email-already-in-use": "An account with this email already exists.",
    "auth/weak-password": "Password should be at least 6 characters.",
    "auth/invalid-email": "Invalid email address.",
    "auth/popup-closed-by-user": "Sign-in was cancelled.",
}
DEFAULT_AUTH_ERROR_MESSAGE = "An error occurred. Please try again."

# Identity-toolkit REST error strings → provider-neutral codes.
REST_AUTH_ERROR_CODES: dict[str, str] = {
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "USER_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/wrong-password",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
}
