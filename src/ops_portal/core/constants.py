"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from decimal import Decimal

DEFAULT_SESSION_DAYS = 7
DEFAULT_LIST_LIMIT = 200
DEFAULT_ADMIN_LIST_LIMIT = 500

# Outbound email endpoint calls
DEFAULT_EMAIL_TIMEOUT_SECONDS = 10.0

# Attendance
CHECK_IN_MIN_GAP_SECONDS = 60
ACTIVITY_REFRESH_SECONDS = 30

# Cashbook vouchers
VOUCHER_PREFIX_CASH_OUT = "CO"
VOUCHER_PREFIX_CASH_IN = "CI"
VOUCHER_DIGITS = 3

# Generated identifiers (vouchers, asset numbers, task numbers)
NUMBER_MAX_ATTEMPTS = 3

# Generated record numbers
ASSET_NUMBER_PREFIX = "ASS"
TASK_NUMBER_PREFIX = "T"
RECORD_NUMBER_DIGITS = 3

# Cross-surface sync
SYNC_CHANNEL_NAME = "ops-portal-sync"
SYNC_TRIGGER_KEY = "data-sync-trigger"
SSE_KEEPALIVE_SECONDS = 15

# Support tickets: ST-<year>-<4 digits>
TICKET_NUMBER_PREFIX = "ST"
TICKET_NUMBER_DIGITS = 4

# Stock and balance alerts (emailed to admins)
STATIONARY_LOW_STOCK_THRESHOLD = 1
LOW_BALANCE_THRESHOLD = Decimal("500.00")
