"""Payment DTOs.

Results returned by the reconciler's synchronous operations.  Business
failures are carried in the body (``success`` / ``return_code``) rather
than raised.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from modules.payments.constants import RETURN_CODE_LOCAL_ERROR, RETURN_CODE_SUCCESS


class PaymentResult(BaseModel):
    """Outcome of ``initiate``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    return_code: int
    return_message: str
    order_id: Optional[int] = None
    correlation_id: Optional[str] = None
    order_url: Optional[str] = None
    gateway_token: Optional[str] = None
    sub_return_code: Optional[int] = None
    sub_return_message: Optional[str] = None

    @classmethod
    def failure(
        cls,
        message: str,
        return_code: int = RETURN_CODE_LOCAL_ERROR,
        order_id: Optional[int] = None,
        sub_return_code: Optional[int] = None,
        sub_return_message: Optional[str] = None,
    ) -> PaymentResult:
        return cls(
            success=False,
            return_code=return_code,
            return_message=message,
            order_id=order_id,
            sub_return_code=sub_return_code,
            sub_return_message=sub_return_message,
        )


class CallbackPayload(BaseModel):
    """Gateway callback body: signed JSON string ``data`` plus its ``mac``."""

    model_config = ConfigDict(frozen=True)

    data: str
    mac: str
    type: Optional[int] = None


class CallbackAck(BaseModel):
    """Acknowledgement body the gateway expects back."""

    model_config = ConfigDict(frozen=True)

    return_code: int
    return_message: str

    @property
    def accepted(self) -> bool:
        return self.return_code == RETURN_CODE_SUCCESS


class RefundResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    return_code: int
    return_message: str
    m_refund_id: Optional[str] = None
    refund_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.return_code == RETURN_CODE_SUCCESS


class PaymentStatusView(BaseModel):
    """Result-page lookup: how a payment attempt ended up."""

    model_config = ConfigDict(frozen=True)

    order_id: int
    correlation_id: str
    payment_status: str
    total: Decimal
