"""Payment gateway port (abstract interface).

Defines the contract the reconciler depends on.  Adapters sign every
outbound mutating request and raise ``GatewayTransportFailure`` /
``GatewayProtocolError`` instead of returning partial results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class GatewayCreateRequest:
    """A payment order to open at the gateway.  ``amount`` is in VND."""

    correlation_id: str
    app_user: str
    app_time: int
    amount: int
    description: str
    items: List[Dict[str, Any]] = field(default_factory=list)
    embed_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayCreateResult:
    return_code: int
    return_message: str = ""
    sub_return_code: Optional[int] = None
    sub_return_message: Optional[str] = None
    order_url: Optional[str] = None
    order_token: Optional[str] = None
    zp_trans_token: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return self.zp_trans_token or self.order_token


@dataclass(frozen=True)
class GatewayStatusResult:
    return_code: int
    return_message: str = ""
    transaction_id: Optional[str] = None
    amount: Optional[int] = None


@dataclass(frozen=True)
class GatewayRefundRequest:
    m_refund_id: str
    transaction_id: str
    amount: int
    description: str
    timestamp: int


@dataclass(frozen=True)
class GatewayRefundResult:
    return_code: int
    return_message: str = ""
    refund_id: Optional[str] = None


class IPaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_order(self, request: GatewayCreateRequest) -> GatewayCreateResult:
        """Open a payment order and return its token and payment URL."""

    @abstractmethod
    def query_status(self, correlation_id: str) -> GatewayStatusResult:
        """Tri-state status: 1 paid, 2 failed, 3 (or other) still processing."""

    @abstractmethod
    def refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        """Request a refund of a captured transaction."""

    @abstractmethod
    def query_refund(self, m_refund_id: str) -> GatewayRefundResult:
        """Status of a previously requested refund."""

    @abstractmethod
    def verify_callback(self, data: str, mac: str) -> bool:
        """Whether ``mac`` authenticates ``data`` as coming from the gateway."""
