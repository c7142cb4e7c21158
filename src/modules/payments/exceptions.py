"""Payment domain exceptions.

The synchronous create/refund paths convert gateway failures into result
objects; the polling path converts them into a reschedule.  Views
translate the rest into HTTP responses.
"""


class PaymentError(Exception):
    """Base class for payment reconciliation errors."""


class DuplicatePayment(PaymentError):
    """The order is already paid or has an active payment attempt."""


class RefundNotAllowed(PaymentError):
    """The order has no captured payment to refund."""


class CallbackVerificationFailed(PaymentError):
    """The callback MAC does not match the payload (security event)."""


class MalformedCorrelationId(PaymentError):
    """A correlation id whose embedded order id cannot be parsed."""


class GatewayTransportFailure(PaymentError):
    """Network error, timeout or non-2xx response from the gateway."""


class GatewayProtocolError(PaymentError):
    """The gateway answered with an unparseable or incomplete body."""
