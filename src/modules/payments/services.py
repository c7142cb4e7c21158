"""Payment reconciliation service.

Drives a gateway payment through create -> (callback | poll) -> finalize.

Two asynchronous paths can observe the same outcome: the gateway's
callback and our own bounded polling.  Both end in ``_finalize_paid``,
which takes the process-wide ``IdempotencyGuard`` for the correlation id
and then re-checks the ledger under the order row lock, so an order is
moved to PAID at most once however the two paths interleave.

``initiate`` claims the order's single payment slot under the same row
lock before calling the gateway, and releases it when the gateway call
does not produce a payment.

Synchronous operations (``initiate``, ``refund``) report gateway failures
in their result objects.  The polling path turns them into a reschedule
until the attempt cap is reached.
"""

from __future__ import annotations

import enum
import json
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.db import transaction

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.exceptions import InvalidTransition, OrderNotFound
from modules.orders.policies import OrderAccessPolicy, order_access_policy
from modules.payments.constants import (
    RESULT_CANCELLED,
    RESULT_PAID,
    RESULT_PROCESSING,
    RETURN_CODE_FAILED,
    RETURN_CODE_LOCAL_ERROR,
    RETURN_CODE_SUCCESS,
    describe_return_code,
)
from modules.payments.correlation import (
    epoch_millis,
    new_correlation_id,
    new_refund_id,
    parse_order_id,
)
from modules.payments.dtos import (
    CallbackAck,
    CallbackPayload,
    PaymentResult,
    PaymentStatusView,
    RefundResult,
)
from modules.payments.exceptions import (
    CallbackVerificationFailed,
    DuplicatePayment,
    GatewayProtocolError,
    GatewayTransportFailure,
    MalformedCorrelationId,
    RefundNotAllowed,
)
from modules.payments.gateway.interfaces import (
    GatewayCreateRequest,
    GatewayRefundRequest,
    IPaymentGateway,
)
from modules.payments.guard import IdempotencyGuard, payment_guard
from modules.payments.scheduling import PollTask
from shared.infrastructure.clock import system_clock

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderLifecycleService
    from modules.payments.config import GatewaySettings
    from modules.payments.scheduling import IScheduler
    from shared.domain.clock import IClock

logger = structlog.get_logger(__name__)


class FinalizeOutcome(str, enum.Enum):
    FINALIZED = "finalized"
    ALREADY_PROCESSING = "already_processing"
    ALREADY_PAID = "already_paid"


class PollOutcome(str, enum.Enum):
    PAID = "paid"
    FAILED = "failed"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


_ACK_MESSAGES = {
    FinalizeOutcome.FINALIZED: "success",
    FinalizeOutcome.ALREADY_PROCESSING: "success (already processed)",
    FinalizeOutcome.ALREADY_PAID: "success (already paid)",
}


class PaymentReconciler:
    def __init__(
        self,
        order_repository: IOrderRepository,
        lifecycle: OrderLifecycleService,
        gateway: IPaymentGateway,
        scheduler: IScheduler,
        settings: GatewaySettings,
        clock: IClock = system_clock,
        guard: IdempotencyGuard = payment_guard,
        access_policy: OrderAccessPolicy = order_access_policy,
    ) -> None:
        self._order_repo = order_repository
        self._lifecycle = lifecycle
        self._gateway = gateway
        self._scheduler = scheduler
        self._settings = settings
        self._clock = clock
        self._guard = guard
        self._access_policy = access_policy

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def initiate(self, order_id: int, requester: Any = None) -> PaymentResult:
        """Open a gateway payment for the order and schedule the first poll.

        Raises only for structural problems (``OrderNotFound``,
        ``OrderAccessDenied``).  Everything else is reported in the result.
        """
        log = logger.bind(order_id=order_id)
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if requester is not None:
            self._access_policy.ensure_can_manage(order, requester)

        # Serialises concurrent initiations for the same order in this process.
        with self._guard.held(f"initiate:{order_id}") as acquired:
            if not acquired:
                return PaymentResult.failure(
                    f"Payment creation for order #{order_id} is already in progress.",
                    order_id=order_id,
                )
            try:
                self._ensure_payable(order)
            except (DuplicatePayment, InvalidTransition) as exc:
                log.warning("payment.initiate_rejected", reason=str(exc))
                return PaymentResult.failure(str(exc), order_id=order_id)

            amount = int(order.total)
            if amount <= 0:
                log.error("payment.invalid_total", total=str(order.total))
                return PaymentResult.failure(
                    f"Cannot create payment: order #{order_id} has invalid total "
                    f"({order.total}). Order total must be greater than 0.",
                    order_id=order_id,
                )

            items = self._item_manifest(order)
            if not items:
                return PaymentResult.failure(
                    f"Cannot create payment: order #{order_id} has no items.",
                    order_id=order_id,
                )

            now = self._clock.now()
            correlation_id = new_correlation_id(order_id, now, self._settings.timezone)
            request = GatewayCreateRequest(
                correlation_id=correlation_id,
                app_user=f"user{order.user_id}",
                app_time=epoch_millis(now),
                amount=amount,
                description=f"Payment for order #{order_id}",
                items=items,
                embed_data={"redirecturl": self._settings.redirect_url},
            )
            log = log.bind(correlation_id=correlation_id)

            # The row-locked claim is what rejects initiations from other
            # processes; the guard above only covers this one.
            try:
                self._claim_attempt(order_id, correlation_id)
            except (DuplicatePayment, InvalidTransition) as exc:
                log.warning("payment.initiate_rejected", reason=str(exc))
                return PaymentResult.failure(str(exc), order_id=order_id)

            log.info("payment.create_requested", amount=amount)
            try:
                result = self._gateway.create_order(request)
            except GatewayTransportFailure as exc:
                log.error("payment.create_transport_failure", error=str(exc))
                self._release_attempt(order_id, correlation_id)
                return PaymentResult.failure(f"Network error: {exc}", order_id=order_id)
            except GatewayProtocolError as exc:
                log.error("payment.create_protocol_error", error=str(exc))
                self._release_attempt(order_id, correlation_id)
                return PaymentResult.failure(
                    f"Gateway response format error: {exc}", order_id=order_id
                )
            except Exception:
                self._release_attempt(order_id, correlation_id)
                raise

            if result.return_code != RETURN_CODE_SUCCESS:
                self._release_attempt(order_id, correlation_id)
                log.warning(
                    "payment.create_declined",
                    return_code=result.return_code,
                    sub_return_code=result.sub_return_code,
                )
                return PaymentResult.failure(
                    result.return_message or describe_return_code(result.return_code),
                    return_code=result.return_code,
                    order_id=order_id,
                    sub_return_code=result.sub_return_code,
                    sub_return_message=result.sub_return_message,
                )

            self._record_attempt(order_id, correlation_id, result.token)

        self.schedule_poll(correlation_id, 0)
        log.info("payment.created")
        return PaymentResult(
            success=True,
            return_code=result.return_code,
            return_message=result.return_message or describe_return_code(result.return_code),
            order_id=order_id,
            correlation_id=correlation_id,
            order_url=result.order_url,
            gateway_token=result.token,
            sub_return_code=result.sub_return_code,
            sub_return_message=result.sub_return_message,
        )

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def handle_callback(self, payload: CallbackPayload) -> CallbackAck:
        """Authenticate and apply a gateway callback.

        Raises:
            CallbackVerificationFailed: MAC mismatch; nothing is changed.
            MalformedCorrelationId: signed payload with an unparseable id.
        """
        if not self._gateway.verify_callback(payload.data, payload.mac):
            logger.warning("payment.callback_rejected", reason="mac_mismatch")
            raise CallbackVerificationFailed("Callback MAC verification failed.")

        try:
            data: Dict[str, Any] = json.loads(payload.data)
        except ValueError as exc:
            raise MalformedCorrelationId("Callback data is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise MalformedCorrelationId("Callback data is not a JSON object.")

        correlation_id = str(data.get("app_trans_id") or "")
        order_id = parse_order_id(correlation_id)
        transaction_id = str(data.get("zp_trans_id") or "")
        log = logger.bind(correlation_id=correlation_id, order_id=order_id)
        log.info("payment.callback_received", transaction_id=transaction_id)

        try:
            outcome = self._finalize_paid(correlation_id, order_id, transaction_id)
        except (OrderNotFound, InvalidTransition) as exc:
            log.error("payment.callback_finalize_failed", error=str(exc))
            return CallbackAck(
                return_code=RETURN_CODE_LOCAL_ERROR, return_message=f"error: {exc}"
            )

        return CallbackAck(
            return_code=RETURN_CODE_SUCCESS, return_message=_ACK_MESSAGES[outcome]
        )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def schedule_poll(self, correlation_id: str, attempt_number: int) -> bool:
        """Submit poll ``attempt_number`` unless the cap has been reached."""
        max_attempts = self._settings.poll_max_attempts
        if attempt_number >= max_attempts:
            logger.warning(
                "payment.poll_limit_reached",
                correlation_id=correlation_id,
                max_attempts=max_attempts,
            )
            return False

        seconds = (
            self._settings.poll_initial_delay_seconds
            if attempt_number == 0
            else self._settings.poll_interval_seconds
        )
        self._scheduler.schedule_once(
            timedelta(seconds=seconds), PollTask(correlation_id, attempt_number)
        )
        return True

    def poll(self, correlation_id: str, attempt_number: int) -> PollOutcome:
        """One status poll.  Never raises; unresolved outcomes reschedule."""
        max_attempts = self._settings.poll_max_attempts
        log = logger.bind(
            correlation_id=correlation_id,
            attempt=attempt_number + 1,
            max_attempts=max_attempts,
        )
        if attempt_number >= max_attempts:
            log.warning("payment.poll_exhausted")
            return PollOutcome.EXHAUSTED

        try:
            order_id = parse_order_id(correlation_id)
        except MalformedCorrelationId:
            return PollOutcome.ABANDONED

        try:
            result = self._gateway.query_status(correlation_id)
        except (GatewayTransportFailure, GatewayProtocolError) as exc:
            log.warning("payment.poll_transient_failure", error=str(exc))
            self.schedule_poll(correlation_id, attempt_number + 1)
            return PollOutcome.RETRYING

        try:
            if result.return_code == RETURN_CODE_SUCCESS:
                outcome = self._finalize_paid(
                    correlation_id, order_id, result.transaction_id or correlation_id
                )
                if outcome is not FinalizeOutcome.ALREADY_PROCESSING:
                    return PollOutcome.PAID
                # A concurrent finalize may still fail; look again next round.
                self.schedule_poll(correlation_id, attempt_number + 1)
                return PollOutcome.RETRYING
            if result.return_code == RETURN_CODE_FAILED:
                self._finalize_failed(correlation_id, order_id)
                return PollOutcome.FAILED
        except (OrderNotFound, InvalidTransition) as exc:
            log.error("payment.poll_finalize_failed", error=str(exc))
            return PollOutcome.ABANDONED
        except Exception:
            log.exception("payment.poll_unexpected_error")
            self.schedule_poll(correlation_id, attempt_number + 1)
            return PollOutcome.RETRYING

        log.info(
            "payment.poll_pending",
            return_code=result.return_code,
            return_message=result.return_message,
        )
        self.schedule_poll(correlation_id, attempt_number + 1)
        return PollOutcome.RETRYING

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(self, order_id: int, requester: Any) -> RefundResult:
        """Refund a paid order.  The order status is left unchanged.

        Raises:
            OrderNotFound, OrderAccessDenied, RefundNotAllowed
        """
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if not self._order_repo.has_status(order_id, OrderStatus.PAID):
            raise RefundNotAllowed(f"Order #{order_id} has not been paid yet.")
        payment = self._order_repo.get_payment(order_id)
        if payment is None or not payment.gateway_transaction_id:
            raise RefundNotAllowed(f"No captured payment found for order #{order_id}.")

        self._access_policy.ensure_can_manage(order, requester)

        now = self._clock.now()
        m_refund_id = new_refund_id(self._settings.app_id, now, self._settings.timezone)
        log = logger.bind(order_id=order_id, m_refund_id=m_refund_id)
        request = GatewayRefundRequest(
            m_refund_id=m_refund_id,
            transaction_id=payment.gateway_transaction_id,
            amount=int(order.total),
            description=f"Refund for order #{order_id}",
            timestamp=epoch_millis(now),
        )

        try:
            result = self._gateway.refund(request)
        except (GatewayTransportFailure, GatewayProtocolError) as exc:
            log.error("payment.refund_failed", error=str(exc))
            return RefundResult(
                return_code=RETURN_CODE_LOCAL_ERROR,
                return_message=f"Refund request failed: {exc}",
                m_refund_id=m_refund_id,
            )

        log.info(
            "payment.refund_requested",
            return_code=result.return_code,
            return_message=result.return_message,
        )
        return RefundResult(
            return_code=result.return_code,
            return_message=result.return_message,
            m_refund_id=m_refund_id,
            refund_id=result.refund_id,
        )

    def refund_status(self, m_refund_id: str) -> RefundResult:
        try:
            result = self._gateway.query_refund(m_refund_id)
        except (GatewayTransportFailure, GatewayProtocolError) as exc:
            logger.error(
                "payment.refund_status_failed", m_refund_id=m_refund_id, error=str(exc)
            )
            return RefundResult(
                return_code=RETURN_CODE_LOCAL_ERROR,
                return_message=f"Refund status request failed: {exc}",
                m_refund_id=m_refund_id,
            )
        return RefundResult(
            return_code=result.return_code,
            return_message=result.return_message,
            m_refund_id=m_refund_id,
        )

    # ------------------------------------------------------------------
    # Result lookup
    # ------------------------------------------------------------------

    def payment_status(self, correlation_id: str) -> PaymentStatusView:
        """Where a payment stands, as shown on the post-payment result page.

        Raises:
            MalformedCorrelationId, OrderNotFound
        """
        order_id = parse_order_id(correlation_id)
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        if self._order_repo.has_status(order_id, OrderStatus.PAID):
            result = RESULT_PAID
        else:
            current = self._order_repo.current_status(order_id)
            cancelled = current is not None and current.status == OrderStatus.CANCELLED
            result = RESULT_CANCELLED if cancelled else RESULT_PROCESSING

        return PaymentStatusView(
            order_id=order_id,
            correlation_id=correlation_id,
            payment_status=result,
            total=order.total,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_payable(self, order: Order) -> None:
        if self._order_repo.has_status(order.id, OrderStatus.PAID):
            raise DuplicatePayment(f"Order #{order.id} has already been paid.")

        payment = self._order_repo.get_payment(order.id)
        if payment is not None and payment.is_active:
            raise DuplicatePayment(
                f"Order #{order.id} already has an active payment "
                f"({payment.correlation_id}). Complete or cancel it first."
            )

        current = self._order_repo.current_status(order.id)
        current_status = current.status_enum if current else None
        if current_status != OrderStatus.PENDING_PAYMENT:
            label = current_status.label if current_status else "none"
            raise InvalidTransition(
                f"Order #{order.id} is not awaiting payment (status: {label}).",
                current=current_status,
                attempted=OrderStatus.PAID,
            )

    @staticmethod
    def _item_manifest(order: Order) -> List[Dict[str, Any]]:
        return [
            {
                "itemid": str(line.product_item_id),
                "itemname": line.product_name,
                "itemprice": int(line.unit_price),
                "itemquantity": line.quantity,
            }
            for line in order.lines.all()
        ]

    @transaction.atomic
    def _claim_attempt(self, order_id: int, correlation_id: str) -> None:
        """Reserve the order's payment slot for ``correlation_id``.

        Runs under the order row lock, so a second initiation from any
        process sees the claim and is rejected by ``_ensure_payable``.
        """
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        self._ensure_payable(order)
        payment = self._order_repo.get_payment_for_update(order_id)
        if payment is None:
            raise OrderNotFound(order_id)
        payment.correlation_id = correlation_id
        payment.gateway_token = correlation_id
        payment.status = PaymentStatus.PENDING
        self._order_repo.save_payment(payment)

    @transaction.atomic
    def _release_attempt(self, order_id: int, correlation_id: str) -> None:
        payment = self._order_repo.get_payment_for_update(order_id)
        if payment is None or payment.correlation_id != correlation_id:
            return
        payment.correlation_id = None
        payment.gateway_token = ""
        self._order_repo.save_payment(payment)

    @transaction.atomic
    def _record_attempt(
        self, order_id: int, correlation_id: str, token: Optional[str]
    ) -> None:
        payment = self._order_repo.get_payment_for_update(order_id)
        if payment is None:
            raise OrderNotFound(order_id)
        payment.correlation_id = correlation_id
        payment.gateway_token = token or correlation_id
        payment.status = PaymentStatus.PENDING
        self._order_repo.save_payment(payment)

    def _finalize_paid(
        self, correlation_id: str, order_id: int, transaction_id: str
    ) -> FinalizeOutcome:
        """Move the order to PAID at most once, from either path."""
        log = logger.bind(correlation_id=correlation_id, order_id=order_id)
        with self._guard.held(correlation_id) as acquired:
            if not acquired:
                log.info("payment.finalize_skipped", reason="already_processing")
                return FinalizeOutcome.ALREADY_PROCESSING

            with transaction.atomic():
                if self._order_repo.get_for_update(order_id) is None:
                    raise OrderNotFound(order_id)
                if self._order_repo.has_status(order_id, OrderStatus.PAID):
                    log.info("payment.finalize_skipped", reason="already_paid")
                    return FinalizeOutcome.ALREADY_PAID

                self._lifecycle.mark_paid(order_id, transaction_id)
                payment = self._order_repo.get_payment_for_update(order_id)
                if payment is not None:
                    payment.status = PaymentStatus.PAID
                    payment.gateway_transaction_id = transaction_id
                    self._order_repo.save_payment(payment)

        log.info("payment.finalized", transaction_id=transaction_id)
        return FinalizeOutcome.FINALIZED

    def _finalize_failed(self, correlation_id: str, order_id: int) -> None:
        log = logger.bind(correlation_id=correlation_id, order_id=order_id)
        with transaction.atomic():
            if self._order_repo.get_for_update(order_id) is None:
                raise OrderNotFound(order_id)
            current = self._order_repo.current_status(order_id)
            if current is not None and current.status == OrderStatus.CANCELLED:
                log.info("payment.failure_already_applied")
                return

            self._lifecycle.cancel(
                order_id,
                note=f"Payment failed. Transaction ID: {correlation_id}",
                detail="Payment processing error at gateway",
            )
            payment = self._order_repo.get_payment_for_update(order_id)
            if payment is not None:
                payment.status = PaymentStatus.CANCELLED
                self._order_repo.save_payment(payment)

        log.warning("payment.failed")
