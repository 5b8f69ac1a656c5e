from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.config import settings


class PaymentInitiate(BaseModel):
    amount: int = Field(gt=0)
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, pattern=r"^[A-Z]{3}$")
    description: Optional[str] = Field(default=None, max_length=255)
    customer_phone_number: Optional[str] = Field(default=None, pattern=r"^\+?[0-9]{6,15}$")


class PaymentNotification(BaseModel):
    """Webhook body posted by the gateway. Unknown fields are kept for token checks."""

    model_config = ConfigDict(extra="allow")

    cpm_trans_id: str = Field(min_length=1)
    cpm_amount: Optional[str] = None
    cpm_currency: Optional[str] = None
    cpm_result: Optional[str] = None
    cpm_trans_status: Optional[str] = None

    @field_validator("cpm_trans_id", "cpm_amount", "cpm_currency", "cpm_result", "cpm_trans_status", mode="before")
    @classmethod
    def as_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        if isinstance(v, (int, float)):
            return str(v)
        return v
