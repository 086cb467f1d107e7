"""
Centralized constants for the scheduler, chat commands and deal states.

Change job IDs, limits or status names here instead of scattering literals across
main, routes and services.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
DEAL_EXPIRY_JOB_ID = "deal_expiry"

# Deal status values (deals.status)
DEAL_STATUS_SCHEDULED = "scheduled"
DEAL_STATUS_ACTIVE = "active"
DEAL_STATUS_COMPLETED = "completed"
DEAL_STATUS_FAILED = "failed"
DEAL_STATUSES = (
    DEAL_STATUS_SCHEDULED,
    DEAL_STATUS_ACTIVE,
    DEAL_STATUS_COMPLETED,
    DEAL_STATUS_FAILED,
)
# Set by the sweeper; a deal never leaves these
DEAL_TERMINAL_STATUSES = (DEAL_STATUS_COMPLETED, DEAL_STATUS_FAILED)

# Participant payment / refund values
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
REFUND_STATUS_INITIATED = "initiated"

# Chat command kinds produced by the command parser
COMMAND_HELP = "help"
COMMAND_LIST_DEALS = "list_deals"
COMMAND_JOIN = "join"
COMMAND_MY_DEALS = "my_deals"
COMMAND_UNKNOWN = "unknown"

# Cap on rows returned by admin list endpoints
ADMIN_LIST_LIMIT = 500
