"""Core constants for cross-module use."""

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

CANCELLED_NOTIFICATION_METHOD = "notifications/cancelled"

# Caller asked for no timeout at all (distinct from not passing one)
INFINITE_TIMEOUT = -1

# Lifetime of the background cancellation send after a call timed out
CANCEL_NOTIFICATION_TIMEOUT_SECONDS = 5.0

# Socket timeout for one-way notification POSTs
NOTIFICATION_TIMEOUT_SECONDS = 2.0

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
