"""Helper functions shared by the PIX provider adapters.

Adapters call these directly instead of inheriting them: input validation,
document and amount normalization, HMAC signature checks, JSON/timestamp
parsing and the HTTP call wrapper that maps provider failures onto
``GatewayError``.
"""

import hashlib
import hmac
import json
import logging
import re
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Optional

import httpx

from app.core.metrics import GATEWAY_REQUEST_DURATION_SECONDS, GATEWAY_REQUESTS_TOTAL
from app.core.tracing import create_span, record_exception
from app.modules.payment_gateway.interface import (
    CreatePixChargeDTO,
    ExecutePayoutDTO,
    GatewayError,
    GatewayErrorCode,
)

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")
_PIX_KEY_HINTS = ("pix", "chave")


# ==================== Normalization ====================

def normalize_document(document: Optional[str]) -> str:
    """Strip everything but digits from a CPF/CNPJ."""
    return _NON_DIGITS.sub("", document or "")


def is_valid_document(document: Optional[str]) -> bool:
    """True for 11 (CPF) or 14 (CNPJ) digits after normalization."""
    return len(normalize_document(document)) in (11, 14)


def format_amount(amount_in_cents: int) -> str:
    """Cents to a reais string with two decimals: 2990 -> "29.90"."""
    return f"{Decimal(amount_in_cents) / 100:.2f}"


def to_cents(amount_in_reais: Any) -> int:
    """Reais (number or numeric string) to integer cents."""
    try:
        value = Decimal(str(amount_in_reais))
    except (InvalidOperation, ValueError) as e:
        raise GatewayError(
            GatewayErrorCode.INVALID_REQUEST,
            f"Invalid amount: {amount_in_reais!r}",
        ) from e
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a provider timestamp into a naive UTC datetime.

    Accepts ISO-8601 strings (with or without ``Z``/offset) and epoch
    seconds. Returns None for empty or unparseable values.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparseable provider timestamp: {value!r}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_json_body(raw_body: bytes, provider: str) -> dict[str, Any]:
    """Decode a webhook body into a JSON object."""
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise GatewayError(
            GatewayErrorCode.INVALID_REQUEST,
            "Webhook body is not valid JSON",
            provider=provider,
        ) from e
    if not isinstance(payload, dict):
        raise GatewayError(
            GatewayErrorCode.INVALID_REQUEST,
            "Webhook body must be a JSON object",
            provider=provider,
        )
    return payload


# ==================== Validation ====================

def validate_charge_request(data: CreatePixChargeDTO, provider: str) -> None:
    """Reject charge requests that must never reach a provider.

    Raises:
        GatewayError: INVALID_REQUEST describing the first problem found
    """
    if data.amount is None or data.amount <= 0:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "Amount must be greater than zero", provider)
    if not data.external_id:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "External id is required", provider)
    if not data.customer or not is_valid_document(data.customer.document):
        raise GatewayError(
            GatewayErrorCode.INVALID_REQUEST,
            "Customer document must be a CPF (11 digits) or CNPJ (14 digits)",
            provider,
        )


def validate_payout_request(data: ExecutePayoutDTO, provider: str) -> None:
    """Reject payout requests that must never reach a provider.

    Raises:
        GatewayError: INVALID_REQUEST describing the first problem found
    """
    if data.amount is None or data.amount <= 0:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "Amount must be greater than zero", provider)
    if not data.external_id:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "External id is required", provider)
    if not data.pix_key:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "PIX key is required", provider)
    if not data.recipient_document:
        raise GatewayError(GatewayErrorCode.INVALID_REQUEST, "Recipient document is required", provider)


# ==================== Signatures ====================

def verify_hmac_signature(
    secret: Optional[str],
    raw_body: bytes,
    signature: Optional[str],
    digestmod: Callable = hashlib.sha256,
    provider: str = "",
) -> bool:
    """Constant-time check of a hex HMAC over the raw body.

    Never raises: a missing secret, a missing header or a header that is
    not hex all yield False.
    """
    if not secret:
        logger.warning(f"{provider} webhook secret not configured; rejecting signature")
        return False
    if not signature:
        return False
    try:
        received = bytes.fromhex(signature.strip())
    except ValueError:
        return False
    expected = hmac.new(secret.encode(), raw_body, digestmod).digest()
    return hmac.compare_digest(expected, received)


def compute_hmac_signature(secret: str, raw_body: bytes, digestmod: Callable = hashlib.sha256) -> str:
    """Hex HMAC of a body; used by the mock provider and by tests."""
    return hmac.new(secret.encode(), raw_body, digestmod).hexdigest()


# ==================== HTTP ====================

def _error_message(response: httpx.Response) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return response.text or "Unknown provider error", response.text
    if isinstance(body, dict):
        message = (
            body.get("message") or body.get("mensagem") or body.get("error")
            or body.get("detail") or "Unknown provider error"
        )
        return str(message), body
    return "Unknown provider error", body


def map_http_error(
    status_code: int,
    message: str,
    provider: str,
    details: Optional[Any] = None,
) -> GatewayError:
    """Translate a provider HTTP failure into the canonical taxonomy."""
    if status_code in (401, 403):
        code = GatewayErrorCode.AUTHENTICATION_FAILED
    elif status_code == 404:
        code = GatewayErrorCode.TRANSACTION_NOT_FOUND
    elif status_code == 429:
        code = GatewayErrorCode.RATE_LIMIT_EXCEEDED
    elif status_code in (400, 422):
        lowered = message.lower()
        if any(hint in lowered for hint in _PIX_KEY_HINTS):
            code = GatewayErrorCode.INVALID_PIX_KEY
        else:
            code = GatewayErrorCode.INVALID_REQUEST
    elif status_code >= 500:
        code = GatewayErrorCode.GATEWAY_UNAVAILABLE
    else:
        code = GatewayErrorCode.UNKNOWN_ERROR

    return GatewayError(code, message, provider=provider, status_code=status_code, details=details)


async def send_provider_request(
    provider: str,
    operation: str,
    method: str,
    url: str,
    headers: dict[str, str],
    data: Optional[dict] = None,
    timeout: float = 30.0,
) -> dict:
    """Perform one provider HTTP call inside a span, with metrics.

    Args:
        provider: Adapter name (metric label)
        operation: Logical operation, e.g. ``generate_pix_charge``
        method: HTTP method
        url: Absolute URL
        headers: Auth and content headers
        data: JSON body
        timeout: Request timeout in seconds

    Returns:
        Decoded JSON response (empty dict for empty bodies)

    Raises:
        GatewayError: mapped from the HTTP status, or GATEWAY_UNAVAILABLE
            for transport failures
    """
    start_time = time.perf_counter()
    outcome = "error"

    with create_span(
        f"pix.{provider}.{operation}",
        attributes={"pix.provider": provider, "pix.operation": operation, "http.method": method},
    ):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method=method, url=url, headers=headers, json=data)
                response.raise_for_status()
                outcome = "success"
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            message, details = _error_message(e.response)
            error = map_http_error(e.response.status_code, message, provider, details)
            record_exception(error)
            logger.error(
                f"{provider} {operation} failed: HTTP {e.response.status_code} {error.code.value}",
                extra={"provider": provider, "operation": operation, "status_code": e.response.status_code},
            )
            raise error from e
        except httpx.RequestError as e:
            record_exception(e)
            logger.error(f"{provider} {operation} transport error: {e}")
            raise GatewayError(
                GatewayErrorCode.GATEWAY_UNAVAILABLE,
                f"Could not reach {provider}",
                provider=provider,
            ) from e
        except ValueError as e:
            record_exception(e)
            raise GatewayError(
                GatewayErrorCode.UNKNOWN_ERROR,
                f"Invalid JSON from {provider}",
                provider=provider,
            ) from e
        finally:
            GATEWAY_REQUESTS_TOTAL.labels(provider=provider, operation=operation, outcome=outcome).inc()
            GATEWAY_REQUEST_DURATION_SECONDS.labels(provider=provider, operation=operation).observe(
                time.perf_counter() - start_time
            )
