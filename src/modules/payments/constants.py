"""Gateway return codes and the human-readable descriptions shown to clients."""

from __future__ import annotations

from typing import Optional

RETURN_CODE_SUCCESS = 1
RETURN_CODE_FAILED = 2
RETURN_CODE_PROCESSING = 3

# Used for failures produced locally (validation, transport) rather than
# by the gateway.
RETURN_CODE_LOCAL_ERROR = -1

_DESCRIPTIONS = {
    RETURN_CODE_SUCCESS: "Success",
    RETURN_CODE_FAILED: "Payment failed",
    RETURN_CODE_PROCESSING: "Payment is being processed",
    -1: "Request failed",
    -2: "Invalid request data or MAC",
}


def describe_return_code(code: Optional[int]) -> str:
    if code is None:
        return "No return code from gateway"
    return _DESCRIPTIONS.get(code, f"Gateway error code {code}")


# Payment status values exposed by the result lookup.
RESULT_PAID = "PAID"
RESULT_CANCELLED = "CANCELLED"
RESULT_PROCESSING = "PROCESSING"
