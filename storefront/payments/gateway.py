"""CinetPay checkout API client.

Two calls are used: ``POST /payment`` to open a hosted payment page and
``POST /payment/check`` to read a transaction's status. CinetPay answers both
with a JSON envelope ``{"code", "message", "data"}``; the HTTP status is not
meaningful on its own, so the envelope code decides success.
"""
import asyncio
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import aiohttp
from prometheus_client import Counter

from ..common.config import settings

_logger = logging.getLogger(__name__)

INIT_SUCCESS_CODE = "201"
CHECK_SUCCESS_CODE = "00"
NOTIFY_SUCCESS_RESULT = "00"
STATUS_ACCEPTED = "ACCEPTED"

# Field order CinetPay uses when computing the notification x-token
NOTIFY_TOKEN_FIELDS = (
    "cpm_site_id",
    "cpm_trans_id",
    "cpm_trans_date",
    "cpm_amount",
    "cpm_currency",
    "signature",
    "payment_method",
    "cel_phone_num",
    "cpm_phone_prefixe",
    "cpm_language",
    "cpm_version",
    "cpm_payment_config",
    "cpm_page_action",
    "cpm_custom",
    "cpm_designation",
    "cpm_error_message",
)

GATEWAY_REQUESTS = Counter(
    "payment_gateway_requests_total",
    "Calls made to the payment gateway",
    ["operation", "outcome"],
)


class GatewayError(Exception):
    """The gateway could not be reached or answered with something unreadable."""


class GatewayTimeout(GatewayError):
    """The gateway did not answer within the configured timeout. Safe to retry."""


@dataclass
class PaymentInit:
    ok: bool
    code: str
    message: str = ""
    payment_url: Optional[str] = None
    payment_token: Optional[str] = None


@dataclass
class PaymentCheck:
    ok: bool
    code: str
    message: str = ""
    status: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None


def notification_token(fields: Mapping[str, Any], secret: str) -> str:
    message = "".join(str(fields.get(name) or "") for name in NOTIFY_TOKEN_FIELDS)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_notification(fields: Mapping[str, Any], token: Optional[str], secret: str) -> bool:
    if not token:
        return False
    return hmac.compare_digest(notification_token(fields, secret), token.strip().lower())


class CinetPayClient:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        site_id: str,
        timeout: float = 15.0,
        channels: str = "ALL",
        lang: str = "FR",
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.site_id = site_id
        self.timeout = timeout
        self.channels = channels
        self.lang = lang
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls) -> "CinetPayClient":
        return cls(
            api_url=settings.CINETPAY_API_URL,
            api_key=settings.CINETPAY_API_KEY,
            site_id=settings.CINETPAY_SITE_ID,
            timeout=settings.CINETPAY_TIMEOUT,
            channels=settings.CINETPAY_CHANNELS,
            lang=settings.CINETPAY_LANG,
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            async with self._get_session().post(url, json=payload) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise GatewayError(f"unreadable gateway response (HTTP {resp.status})") from e
        except asyncio.TimeoutError as e:
            GATEWAY_REQUESTS.labels(operation=operation, outcome="timeout").inc()
            raise GatewayTimeout(f"gateway {operation} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            GATEWAY_REQUESTS.labels(operation=operation, outcome="error").inc()
            raise GatewayError(f"gateway {operation} failed: {e}") from e
        except GatewayError:
            GATEWAY_REQUESTS.labels(operation=operation, outcome="error").inc()
            raise
        if not isinstance(data, dict):
            GATEWAY_REQUESTS.labels(operation=operation, outcome="error").inc()
            raise GatewayError(f"unexpected gateway payload for {operation}")
        GATEWAY_REQUESTS.labels(operation=operation, outcome=str(data.get("code"))).inc()
        return data

    async def create_payment(
        self,
        transaction_id: str,
        amount: int,
        currency: str,
        description: str,
        customer_name: str,
        customer_surname: str,
        customer_email: str,
        customer_phone_number: str,
        notify_url: str,
        return_url: str,
    ) -> PaymentInit:
        payload = {
            "apikey": self.api_key,
            "site_id": self.site_id,
            "transaction_id": transaction_id,
            "amount": int(amount),
            "currency": currency,
            "description": description,
            "customer_name": customer_name,
            "customer_surname": customer_surname,
            "customer_email": customer_email,
            "customer_phone_number": customer_phone_number,
            "notify_url": notify_url,
            "return_url": return_url,
            "channels": self.channels,
            "lang": self.lang,
        }
        result = await self._post("initiate", "/payment", payload)
        code = str(result.get("code", ""))
        data = result.get("data") or {}
        if code != INIT_SUCCESS_CODE:
            return PaymentInit(ok=False, code=code, message=result.get("message") or "")
        return PaymentInit(
            ok=True,
            code=code,
            message=result.get("message") or "",
            payment_url=data.get("payment_url"),
            payment_token=data.get("payment_token"),
        )

    async def check_payment(self, transaction_id: str) -> PaymentCheck:
        payload = {"apikey": self.api_key, "site_id": self.site_id, "transaction_id": transaction_id}
        result = await self._post("check", "/payment/check", payload)
        code = str(result.get("code", ""))
        data = result.get("data") or {}
        if code != CHECK_SUCCESS_CODE:
            return PaymentCheck(ok=False, code=code, message=result.get("message") or "")
        amount = data.get("amount")
        return PaymentCheck(
            ok=True,
            code=code,
            message=result.get("message") or "",
            status=data.get("status"),
            amount=str(amount) if amount is not None else None,
            currency=data.get("currency"),
        )
