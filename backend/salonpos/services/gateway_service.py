# Overview: HTTP client for refunds at the external payment gateway.

from __future__ import annotations

import httpx
from flask import current_app

from .errors import GatewayError


class PaymentGatewayClient:
    """
    Minimal refunds client for the card/online payment processor.

    Every call has a bounded timeout; any transport error or non-2xx
    response becomes GatewayError. `transport` lets tests plug in
    httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def refund(self, payment_reference: str, amount: float, idempotency_key: str | None = None) -> dict:
        headers = {}
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key

        try:
            response = self._client.post(
                f"/v1/payments/{payment_reference}/refunds",
                json={"amount": round(amount, 2)},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"Gateway request failed: {exc}") from exc

        if response.status_code >= 300:
            raise GatewayError(f"Gateway refund rejected ({response.status_code}): {response.text[:200]}")

        try:
            return response.json()
        except ValueError:
            return {}

    def close(self) -> None:
        self._client.close()


def get_gateway_client() -> PaymentGatewayClient | None:
    """
    Client for the current app, or None when no access token is configured.

    An instance registered at app.extensions["payment_gateway"] wins (tests).
    """
    client = current_app.extensions.get("payment_gateway")
    if client is not None:
        return client

    token = current_app.config.get("PAYMENT_GATEWAY_ACCESS_TOKEN")
    if not token:
        return None
    client = PaymentGatewayClient(
        current_app.config["PAYMENT_GATEWAY_BASE_URL"],
        token,
        timeout=current_app.config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10.0),
    )
    current_app.extensions["payment_gateway"] = client
    return client
