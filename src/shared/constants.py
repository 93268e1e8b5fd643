"""Shared constants across the application."""

# Roles allowed to dispatch notifications when no settings override them
DEFAULT_PRIVILEGED_ROLES = ["admin"]

# Default limits
DEFAULT_QUEUE_BATCH_SIZE = 10
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_QUEUE_LIST_LIMIT = 50
MAX_QUEUE_LIST_LIMIT = 200

# Time windows
DEFAULT_PACING_SECONDS = 1.0
DEFAULT_POLL_INTERVAL_SECONDS = 60.0

# Email content
PLACEHOLDER_PRODUCT_IMAGE = "https://via.placeholder.com/300x300?text=Product+Image"
BACK_IN_STOCK_SUBJECT = "{product_name} is back in stock!"
