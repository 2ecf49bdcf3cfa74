API_VERSION_HEADER = "X-CreditGate-Version"

# Caller keys
CALLER_KEY_PREFIX = "ck_"
CALLER_KEY_HEADER = "X-API-Key"

# Admin boundary
ADMIN_TOKEN_HEADER = "X-Admin-Token"

# PayOS webhook
PAYOS_SUCCESS_CODE = "00"
MAX_WEBHOOK_PAYLOAD_BYTES = 1024 * 1024

# Payment listing
DEFAULT_PAYMENT_HISTORY_LIMIT = 10
MAX_PAYMENT_HISTORY_LIMIT = 100

# Admin statistics
TOP_PROXY_PERFORMERS = 5
