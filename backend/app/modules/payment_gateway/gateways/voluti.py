"""Voluti PIX gateway implementation.

Voluti follows the BACEN "cob" vocabulary in Portuguese. Charges are
issued against the company's own PIX key (``VOLUTI_CLIENT_ID``) and
webhooks are signed with HMAC-SHA512 (hex) in ``X-Voluti-Signature``.
"""

import base64
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from app.modules.payment_gateway.helpers import (
    format_amount,
    normalize_document,
    parse_json_body,
    parse_timestamp,
    send_provider_request,
    to_cents,
    validate_charge_request,
    validate_payout_request,
    verify_hmac_signature,
)
from app.modules.payment_gateway.interface import (
    CreatePixChargeDTO,
    ExecutePayoutDTO,
    GatewayError,
    GatewayErrorCode,
    GatewayWebhookEvent,
    PaymentGatewayInterface,
    PaymentGatewayStatus,
    PaymentStatusResult,
    PayoutGatewayStatus,
    PayoutResult,
    PayoutStatusResult,
    PixChargeResult,
    PixKeyType,
    WebhookEventType,
)

logger = logging.getLogger(__name__)

DEFAULT_PAYOUT_ETA = timedelta(minutes=5)


def _document_fields(document: str) -> dict[str, str]:
    """Voluti expects either ``cpf`` or ``cnpj`` depending on length."""
    digits = normalize_document(document)
    if len(digits) == 11:
        return {"cpf": digits}
    if len(digits) == 14:
        return {"cnpj": digits}
    return {}


class VolutiGateway(PaymentGatewayInterface):
    """Voluti adapter (Bearer token auth, BACEN cob API)."""

    SIGNATURE_HEADER = "X-Voluti-Signature"

    PAYMENT_STATUS_MAP = {
        "ATIVA": PaymentGatewayStatus.PENDING,
        "PENDENTE": PaymentGatewayStatus.PENDING,
        "CONCLUIDA": PaymentGatewayStatus.PAID,
        "PAGA": PaymentGatewayStatus.PAID,
        "EXPIRADA": PaymentGatewayStatus.EXPIRED,
        "REMOVIDA_PELO_USUARIO_RECEBEDOR": PaymentGatewayStatus.CANCELLED,
        "CANCELADA": PaymentGatewayStatus.CANCELLED,
        "DEVOLVIDA": PaymentGatewayStatus.REFUNDED,
    }

    PAYOUT_STATUS_MAP = {
        "PENDENTE": PayoutGatewayStatus.PENDING,
        "EM_PROCESSAMENTO": PayoutGatewayStatus.PROCESSING,
        "PROCESSANDO": PayoutGatewayStatus.PROCESSING,
        "EFETIVADO": PayoutGatewayStatus.COMPLETED,
        "CONCLUIDO": PayoutGatewayStatus.COMPLETED,
        "REJEITADO": PayoutGatewayStatus.FAILED,
        "ERRO": PayoutGatewayStatus.FAILED,
    }

    PAYMENT_EVENT_MAP = {
        "CONCLUIDA": WebhookEventType.PAYMENT_PAID,
        "PAGA": WebhookEventType.PAYMENT_PAID,
        "EXPIRADA": WebhookEventType.PAYMENT_EXPIRED,
        "CANCELADA": WebhookEventType.PAYMENT_CANCELLED,
        "REMOVIDA_PELO_USUARIO_RECEBEDOR": WebhookEventType.PAYMENT_CANCELLED,
        "DEVOLVIDA": WebhookEventType.PAYMENT_REFUNDED,
    }

    PIX_KEY_TYPE_MAP = {
        PixKeyType.CPF: "CPF",
        PixKeyType.CNPJ: "CNPJ",
        PixKeyType.EMAIL: "EMAIL",
        PixKeyType.PHONE: "TELEFONE",
        PixKeyType.EVP: "CHAVE_ALEATORIA",
    }

    def __init__(
        self,
        api_key: str,
        client_id: str,
        webhook_secret: str,
        base_url: str = "https://api.voluti.com.br",
        timeout: float = 30.0,
    ):
        self._api_key = api_key
        self._client_id = client_id
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "voluti"

    async def _make_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to the Voluti API."""
        return await send_provider_request(
            provider=self.name,
            operation=operation,
            method=method,
            url=f"{self._base_url}{endpoint}",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            data=data,
            timeout=self._timeout,
        )

    async def generate_pix_charge(self, data: CreatePixChargeDTO) -> PixChargeResult:
        validate_charge_request(data, self.name)
        logger.info(f"Voluti generate_pix_charge: txid={data.external_id}, amount={data.amount}")

        body: dict[str, Any] = {
            "valor": {"original": format_amount(data.amount)},
            "chave": self._client_id,
            "txid": data.external_id,
            "calendario": {"expiracao": data.expires_in_minutes * 60},
            "devedor": {"nome": data.customer.name, **_document_fields(data.customer.document)},
            "solicitacaoPagador": data.description,
        }
        if data.metadata:
            body["infoAdicionais"] = [
                {"nome": key, "valor": str(value)} for key, value in data.metadata.items()
            ]

        response = await self._make_request("generate_pix_charge", "POST", "/api/v1/pix/cob", body)

        copy_paste = response.get("pixCopiaECola") or response.get("brcode", "")
        if response.get("pixCopiaECola"):
            qr_code = base64.b64encode(response["pixCopiaECola"].encode()).decode()
        else:
            qr_code = response.get("qrcode", "")

        return PixChargeResult(
            gateway_id=str(response.get("txid") or response.get("id", "")),
            qr_code=qr_code,
            qr_code_text=copy_paste,
            expires_at=datetime.utcnow() + timedelta(minutes=data.expires_in_minutes),
            status=self._map_payment_status(response.get("status")),
        )

    async def get_payment_status(self, gateway_id: str) -> PaymentStatusResult:
        response = await self._make_request("get_payment_status", "GET", f"/api/v1/pix/cob/{gateway_id}")
        pix_entries = response.get("pix") or []
        first_pix = pix_entries[0] if pix_entries else {}
        return PaymentStatusResult(
            gateway_id=str(response.get("txid", gateway_id)),
            status=self._map_payment_status(response.get("status")),
            paid_at=parse_timestamp(first_pix.get("horario")),
            paid_amount=to_cents(first_pix["valor"]) if first_pix.get("valor") else None,
        )

    async def execute_payout(self, data: ExecutePayoutDTO) -> PayoutResult:
        validate_payout_request(data, self.name)
        logger.info(f"Voluti execute_payout: idTransacao={data.external_id}, amount={data.amount}")

        response = await self._make_request("execute_payout", "POST", "/api/v1/pix/envio", {
            "valor": format_amount(data.amount),
            "idTransacao": data.external_id,
            "chave": data.pix_key,
            "tipoChave": self.PIX_KEY_TYPE_MAP.get(data.pix_key_type, data.pix_key_type.value.upper()),
            "favorecido": {"nome": data.recipient_name, **_document_fields(data.recipient_document)},
            "descricao": data.description or "Saque",
        })

        return PayoutResult(
            gateway_id=str(response.get("idTransacao") or response.get("id", "")),
            status=self._map_payout_status(response.get("status")),
            estimated_completion_at=(
                parse_timestamp(response.get("previsaoEnvio"))
                or datetime.utcnow() + DEFAULT_PAYOUT_ETA
            ),
        )

    async def get_payout_status(self, gateway_id: str) -> PayoutStatusResult:
        response = await self._make_request("get_payout_status", "GET", f"/api/v1/pix/envio/{gateway_id}")
        return PayoutStatusResult(
            gateway_id=str(response.get("idTransacao", gateway_id)),
            status=self._map_payout_status(response.get("status")),
            completed_at=parse_timestamp(response.get("dataEfetivacao")),
            failure_reason=response.get("motivoRejeicao"),
        )

    def validate_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        return verify_hmac_signature(
            self._webhook_secret, raw_body, signature, hashlib.sha512, self.name
        )

    def parse_webhook_event(self, raw_body: bytes) -> GatewayWebhookEvent:
        """Normalize a Voluti notification.

        Charge notifications carry a ``pix`` array or ``tipo=COBRANCA``;
        transfer notifications carry ``tipo=ENVIO`` or ``idTransferencia``.
        """
        payload = parse_json_body(raw_body, self.name)

        status = str(payload.get("status") or "").upper()
        tipo = str(payload.get("tipo") or "").upper()
        gateway_id = payload.get("txid") or payload.get("idTransacao") or payload.get("idTransferencia")

        event_type: Optional[WebhookEventType] = None
        if payload.get("pix") or tipo == "COBRANCA":
            event_type = self.PAYMENT_EVENT_MAP.get(status or "CONCLUIDA")
        elif tipo == "ENVIO" or payload.get("idTransferencia"):
            if status == "EFETIVADO":
                event_type = WebhookEventType.PAYOUT_COMPLETED
            elif status == "REJEITADO":
                event_type = WebhookEventType.PAYOUT_FAILED
            else:
                event_type = WebhookEventType.PAYOUT_PROCESSING

        if event_type is None or not gateway_id:
            raise GatewayError(
                GatewayErrorCode.INVALID_REQUEST,
                f"Unsupported Voluti webhook: tipo={tipo or '<missing>'} status={status or '<missing>'}",
                provider=self.name,
            )

        return GatewayWebhookEvent(
            type=event_type,
            gateway_id=str(gateway_id),
            event_id=str(payload.get("webhookId") or f"{gateway_id}-{status or event_type.value}"),
            timestamp=parse_timestamp(payload.get("horario")) or datetime.utcnow(),
            data=payload,
            failure_reason=payload.get("motivoRejeicao"),
        )

    def _map_payment_status(self, status: Optional[str]) -> PaymentGatewayStatus:
        """Map Voluti cob status to PaymentGatewayStatus."""
        return self.PAYMENT_STATUS_MAP.get(str(status or "").upper(), PaymentGatewayStatus.PENDING)

    def _map_payout_status(self, status: Optional[str]) -> PayoutGatewayStatus:
        """Map Voluti envio status to PayoutGatewayStatus."""
        return self.PAYOUT_STATUS_MAP.get(str(status or "").upper(), PayoutGatewayStatus.PENDING)
