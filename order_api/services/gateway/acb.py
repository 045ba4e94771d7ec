"""
Bank Transfer Gateway Client (ACB connector)

Production implementation over the gateway's HTTP API using httpx.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - GATEWAY_CLIENT_ID / GATEWAY_CLIENT_SECRET for the OAuth client-credentials grant
    - GATEWAY_ACCOUNT_NUMBER for the merchant account encoded in QR payloads

Every request is wrapped in the gateway's envelope
({requestTrace, requestDateTime, requestParameters}); responses carry
{responseStatus, responseBody}.
"""

import logging
import time
from datetime import datetime
from typing import Any, Optional

import httpx

from order_api.core.config import Settings, get_settings
from order_api.core.exceptions import GatewayUnavailable
from order_api.services.gateway.base import (
    BaseGatewayClient,
    QrResult,
    TransactionStatusResult,
)
from order_api.utils import format_gateway_datetime, generate_request_trace

logger = logging.getLogger(__name__)


class AcbGatewayClient(BaseGatewayClient):
    """
    HTTP client for the bank-transfer gateway.

    Access tokens are cached until shortly before they expire.
    """

    TOKEN_PATH = "/oauth2/token"
    QR_PATH = "/payments/qr"
    STATUS_PATH = "/payments/transactions/{transaction_id}"

    # Refresh the token this many seconds before it expires
    TOKEN_LEEWAY_SECONDS = 30

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Raises:
            ValueError: If gateway credentials are not configured
        """
        settings = settings or get_settings()

        if not settings.gateway_client_id or not settings.gateway_client_secret:
            raise ValueError(
                "GATEWAY_CLIENT_ID and GATEWAY_CLIENT_SECRET are required for "
                f"{settings.env_mode.value} mode. "
                "Set them in your .env file or environment variables."
            )

        self._client_id = settings.gateway_client_id
        self._client_secret = settings.gateway_client_secret
        self._account_number = settings.gateway_account_number
        self._account_name = settings.gateway_account_name

        self._http = httpx.AsyncClient(
            base_url=settings.gateway_base_url,
            timeout=settings.gateway_timeout_seconds,
            transport=transport,
        )
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

        logger.info(f"AcbGatewayClient initialized (base_url={settings.gateway_base_url})")

    @property
    def provider_name(self) -> str:
        return "acb"

    def _envelope(self, parameters: dict[str, Any]) -> dict[str, Any]:
        return {
            "requestTrace": generate_request_trace(),
            "requestDateTime": format_gateway_datetime(),
            "requestParameters": parameters,
        }

    async def _get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            response = await self._http.post(
                self.TOKEN_PATH,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Gateway: token request failed - {e}")
            raise GatewayUnavailable(f"Token request failed: {e}")

        self._token = data["access_token"]
        expires_in = float(data.get("expires_in", 300))
        self._token_expires_at = time.monotonic() + max(expires_in - self.TOKEN_LEEWAY_SECONDS, 0)
        return self._token

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        token = await self._get_token()
        try:
            response = await self._http.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Gateway: {method} {path} returned {e.response.status_code}")
            raise GatewayUnavailable(f"Gateway returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Gateway: {method} {path} failed - {e}")
            raise GatewayUnavailable(str(e))

    async def create_qr(
        self,
        transaction_id: str,
        amount: float,
        description: Optional[str] = None,
    ) -> QrResult:
        start_time = datetime.now()

        data = await self._request(
            "POST",
            self.QR_PATH,
            json=self._envelope({
                "traceNumber": transaction_id,
                "amount": round(amount, 2),
                "accountNumber": self._account_number,
                "accountName": self._account_name,
                "description": description or transaction_id,
            }),
        )

        body = data.get("responseBody") or {}
        qr_code = body.get("qrDataUrl") or body.get("qrCode")
        if not qr_code:
            logger.error(f"Gateway: no QR payload for {transaction_id}: {data.get('responseStatus')}")
            raise GatewayUnavailable("Gateway returned no QR payload")

        elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.info(f"Gateway: QR issued for {transaction_id} in {elapsed_ms:.0f}ms")

        return QrResult(
            transaction_id=transaction_id,
            qr_code=qr_code,
            response_time_ms=elapsed_ms,
        )

    async def get_transaction_status(self, transaction_id: str) -> TransactionStatusResult:
        data = await self._request(
            "GET",
            self.STATUS_PATH.format(transaction_id=transaction_id),
        )
        body = data.get("responseBody") or {}
        status = (data.get("responseStatus") or {}).get("responseMessage")
        return TransactionStatusResult(
            transaction_id=transaction_id,
            status=body.get("transactionStatus", "NOT_FOUND"),
            message=status,
        )

    async def health_check(self) -> bool:
        try:
            await self._get_token()
            return True
        except GatewayUnavailable:
            return False

    async def aclose(self) -> None:
        await self._http.aclose()
