# app/services/paypal_client.py
import logging
from typing import Any, Dict, Optional

import requests

from app.config import settings
from app.errors import UpstreamGatewayFailure

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15


class PayPalClient:
    """
    Thin PayPal REST client.

    Every call fetches a client-credentials token first. Transport errors and
    non-2xx answers raise ``UpstreamGatewayFailure``; there is no retry here,
    the caller (user retry or webhook redelivery) is the retry mechanism.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        webhook_id: Optional[str],
        base_url: str,
        http: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls) -> "PayPalClient":
        return cls(
            client_id=settings.PAYPAL_CLIENT_ID,
            client_secret=settings.PAYPAL_CLIENT_SECRET,
            webhook_id=settings.PAYPAL_WEBHOOK_ID,
            base_url=settings.paypal_base_url,
        )

    # -------------------------
    # internals
    # -------------------------

    def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise UpstreamGatewayFailure("Missing PAYPAL_CLIENT_ID or PAYPAL_CLIENT_SECRET")

        try:
            response = self.http.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamGatewayFailure(f"PayPal token request failed: {exc}") from exc

        if not response.ok:
            raise UpstreamGatewayFailure("Failed to get PayPal access token")
        return response.json()["access_token"]

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        action: str,
        allow_no_content: bool = False,
    ) -> Optional[Dict[str, Any]]:
        token = self._access_token()
        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.error(f"PayPal {action} transport error: {exc}")
            raise UpstreamGatewayFailure(f"Failed to {action}") from exc

        if allow_no_content and response.status_code == 204:
            return None

        if not response.ok:
            logger.error(f"PayPal {action} failed ({response.status_code}): {response.text}")
            raise UpstreamGatewayFailure(f"Failed to {action}")

        return response.json() if response.content else None

    # -------------------------
    # gateway operations
    # -------------------------

    def create_order(
        self,
        *,
        amount_cents: int,
        currency: str,
        return_url: str,
        cancel_url: str,
        reference_id: str,
    ) -> Dict[str, str]:
        data = self._request(
            "POST",
            "/v2/checkout/orders",
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {
                            "currency_code": currency.upper(),
                            "value": f"{amount_cents / 100:.2f}",
                        },
                        "custom_id": reference_id,
                    }
                ],
                "application_context": {
                    "return_url": return_url,
                    "cancel_url": cancel_url,
                },
            },
            action="create PayPal order",
        )

        approval_url = next(
            (link["href"] for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not approval_url:
            raise UpstreamGatewayFailure("Missing PayPal approval URL")

        return {"order_id": data["id"], "approval_url": approval_url}

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            action="capture PayPal order",
        )

    def fetch_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/v1/billing/subscriptions/{subscription_id}",
            action="fetch PayPal subscription",
        )

    def cancel_subscription(
        self, subscription_id: str, reason: str = "User requested cancellation"
    ) -> bool:
        self._request(
            "POST",
            f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason},
            action="cancel PayPal subscription",
            allow_no_content=True,
        )
        return True

    def verify_webhook_signature(
        self,
        *,
        transmission_id: str,
        transmission_time: str,
        transmission_sig: str,
        cert_url: str,
        auth_algo: str,
        webhook_event: Dict[str, Any],
    ) -> bool:
        if not self.webhook_id:
            raise UpstreamGatewayFailure("Missing PAYPAL_WEBHOOK_ID")

        data = self._request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={
                "transmission_id": transmission_id,
                "transmission_time": transmission_time,
                "cert_url": cert_url,
                "auth_algo": auth_algo,
                "transmission_sig": transmission_sig,
                "webhook_id": self.webhook_id,
                "webhook_event": webhook_event,
            },
            action="verify PayPal webhook signature",
        )
        return (data or {}).get("verification_status") == "SUCCESS"


def capture_id(capture: Optional[Dict[str, Any]]) -> Optional[str]:
    try:
        return capture["purchase_units"][0]["payments"]["captures"][0]["id"]
    except (KeyError, IndexError, TypeError):
        return None


paypal_client = PayPalClient.from_settings()


def get_payment_gateway() -> PayPalClient:
    return paypal_client
