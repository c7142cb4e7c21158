"""Payment gateway configuration.

Values come from Django settings (which read the environment through
``python-decouple``) and are frozen into a ``GatewaySettings`` instance
handed to the gateway adapter and the reconciler.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GatewaySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_id: int
    key1: str
    key2: str
    create_url: str
    query_url: str
    refund_url: str
    refund_status_url: str
    callback_url: str = ""
    redirect_url: str = ""
    bank_code: str = "zalopayapp"

    poll_initial_delay_seconds: int = Field(default=10, ge=0)
    poll_interval_seconds: int = Field(default=120, ge=1)
    poll_max_attempts: int = Field(default=8, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Timezone of the yyMMdd prefix in correlation and refund ids.
    timezone: str = "Asia/Ho_Chi_Minh"

    @classmethod
    def from_django(cls) -> GatewaySettings:
        from django.conf import settings

        return cls(
            app_id=settings.ZALOPAY_APP_ID,
            key1=settings.ZALOPAY_KEY1,
            key2=settings.ZALOPAY_KEY2,
            create_url=settings.ZALOPAY_CREATE_URL,
            query_url=settings.ZALOPAY_QUERY_URL,
            refund_url=settings.ZALOPAY_REFUND_URL,
            refund_status_url=settings.ZALOPAY_REFUND_STATUS_URL,
            callback_url=settings.ZALOPAY_CALLBACK_URL,
            redirect_url=settings.ZALOPAY_REDIRECT_URL,
            poll_initial_delay_seconds=settings.PAYMENT_POLL_INITIAL_DELAY_SECONDS,
            poll_interval_seconds=settings.PAYMENT_POLL_INTERVAL_SECONDS,
            poll_max_attempts=settings.PAYMENT_POLL_MAX_ATTEMPTS,
            request_timeout_seconds=settings.PAYMENT_REQUEST_TIMEOUT_SECONDS,
            timezone=settings.PAYMENT_TIMEZONE,
        )
