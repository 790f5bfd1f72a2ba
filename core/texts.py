# User-facing strings for the launch flow
APP_NAME = "LinguaBoost"

INIT_ERROR_TITLE = "Initialization Error"
INIT_ERROR_TEXT = "Something went wrong while preparing the app. Please try again."
RETRY_BUTTON_TEXT = "Retry"

NO_CONNECTION_TITLE = "No internet connection"
NO_CONNECTION_TEXT = "Check your connection and try again"

CONFIG_ERROR_TEXTS = {
    "no_connection": "No internet connection",
    "invalid_url": "Invalid configuration URL",
    "encoding": "Could not encode the request: {detail}",
    "network": "Network error: {detail}",
    "invalid_response": "Invalid server response",
    "no_data": "No data in server response",
    "decoding": "Could not decode the response: {detail}",
    "server_error": "Server error ({status_code}): {detail}",
    "recheck_unavailable": "Conversion recheck is not available",
}

UNKNOWN_ERROR_TEXT = "Unknown error"
