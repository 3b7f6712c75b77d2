import pytest
import requests

from app.errors import UpstreamGatewayFailure
from app.services.paypal_client import PayPalClient, capture_id


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"{}" if payload is not None else b""
        self.text = str(payload)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


class FakeHttp:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append(("POST", url, kwargs))
        return FakeResponse(payload={"access_token": "TOKEN"})

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses, webhook_id="WH-1"):
    http = FakeHttp(responses)
    client = PayPalClient("id", "secret", webhook_id, "https://paypal.test/", http=http)
    return client, http


def test_create_order_returns_approval_link():
    client, http = _client(FakeResponse(201, {
        "id": "ORDER-9",
        "links": [{"rel": "self", "href": "x"}, {"rel": "approve", "href": "https://approve"}],
    }))

    order = client.create_order(
        amount_cents=1999, currency="usd", return_url="r", cancel_url="c", reference_id="7"
    )

    assert order == {"order_id": "ORDER-9", "approval_url": "https://approve"}
    method, url, kwargs = http.requests[-1]
    assert url == "https://paypal.test/v2/checkout/orders"
    assert kwargs["json"]["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "19.99"}
    assert kwargs["headers"]["Authorization"] == "Bearer TOKEN"


def test_non_2xx_is_upstream_failure():
    client, _ = _client(FakeResponse(500, {"name": "INTERNAL_SERVER_ERROR"}))

    with pytest.raises(UpstreamGatewayFailure):
        client.capture_order("ORDER-1")


def test_transport_error_is_upstream_failure():
    client, _ = _client(requests.ConnectionError("reset"))

    with pytest.raises(UpstreamGatewayFailure):
        client.fetch_subscription("I-1")


def test_cancel_accepts_no_content():
    client, http = _client(FakeResponse(204))

    assert client.cancel_subscription("I-1", "Replaced by new subscription") is True
    assert http.requests[-1][2]["json"] == {"reason": "Replaced by new subscription"}


def test_missing_credentials_fail_before_any_request():
    http = FakeHttp([])
    client = PayPalClient(None, None, "WH-1", "https://paypal.test", http=http)

    with pytest.raises(UpstreamGatewayFailure):
        client.capture_order("ORDER-1")
    assert http.requests == []


def test_verify_webhook_signature():
    client, http = _client(FakeResponse(200, {"verification_status": "SUCCESS"}))

    assert client.verify_webhook_signature(
        transmission_id="T", transmission_time="t", transmission_sig="s",
        cert_url="u", auth_algo="a", webhook_event={"id": "E"},
    ) is True
    assert http.requests[-1][2]["json"]["webhook_id"] == "WH-1"


def test_verify_requires_webhook_id():
    client, _ = _client(webhook_id=None)

    with pytest.raises(UpstreamGatewayFailure):
        client.verify_webhook_signature(
            transmission_id="T", transmission_time="t", transmission_sig="s",
            cert_url="u", auth_algo="a", webhook_event={},
        )


def test_capture_id():
    capture = {"purchase_units": [{"payments": {"captures": [{"id": "CAP-1"}]}}]}

    assert capture_id(capture) == "CAP-1"
    assert capture_id({"purchase_units": []}) is None
    assert capture_id(None) is None
