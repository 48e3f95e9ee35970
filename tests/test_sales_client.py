from __future__ import annotations

import json

import pytest
import requests
import responses

from possync_sdk import load_config
from possync_sdk.clients.sales_client import SalesClient
from possync_sdk.exceptions import AuthError, ConflictError, ServerError, TransportError, ValidationError
from possync_sdk.http_client import HttpClient
from possync_sdk.tracing import TraceContext

PROCESS_SALE_URL = "https://api.example.com/functions/v1/process-sale"


def _client(base_url: str, api_key: str | None = None) -> HttpClient:
    cfg = load_config()
    object.__setattr__(cfg, "api_base_url", base_url)
    object.__setattr__(cfg, "api_key", api_key)
    return HttpClient(cfg, trace=TraceContext())


@responses.activate
def test_submit_sale_sends_bill_data_and_idempotency_key(make_record) -> None:
    http = _client("https://api.example.com", api_key="anon-key")
    responses.add(responses.POST, PROCESS_SALE_URL, json={"saleId": "sale-9", "billId": "INV-1"}, status=200)
    record = make_record("INV-1")

    response = SalesClient(http=http, access_token="token").submit_sale(record)

    assert response.sale_id == "sale-9"
    assert response.bill_id == "INV-1"
    request = responses.calls[0].request
    assert request.headers["Idempotency-Key"] == "INV-1"
    assert request.headers["Authorization"] == "Bearer token"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["X-Trace-ID"]
    body = json.loads(request.body)
    bill = body["billData"]
    assert bill["billId"] == "INV-1"
    assert bill["finalAmount"] == 100.0
    assert bill["paymentMethod"] == "cash"
    assert bill["customer"] == {"name": "A", "phone": "123", "email": "", "address": ""}
    assert bill["items"][0]["unitPrice"] == 50.0
    assert http.last_operation is not None
    assert http.last_operation.operation == "process_sale"


@responses.activate
def test_submit_sale_accepts_empty_and_non_object_bodies(make_record) -> None:
    http = _client("https://api.example.com")
    responses.add(responses.POST, PROCESS_SALE_URL, body="", status=204)
    responses.add(responses.POST, PROCESS_SALE_URL, json=["ok"], status=200)
    client = SalesClient(http=http, access_token="token")

    assert client.submit_sale(make_record("INV-1")).bill_id == "INV-1"
    assert client.submit_sale(make_record("INV-2")).bill_id == "INV-2"


@responses.activate
def test_submit_sale_fills_missing_bill_id_and_stringifies_ids(make_record) -> None:
    http = _client("https://api.example.com")
    responses.add(responses.POST, PROCESS_SALE_URL, json={"saleId": 42, "stockUpdated": True}, status=200)

    response = SalesClient(http=http, access_token="token").submit_sale(make_record("INV-7"))

    assert response.sale_id == "42"
    assert response.bill_id == "INV-7"


@responses.activate
def test_submit_sale_is_not_retried_on_server_error(monkeypatch: pytest.MonkeyPatch, make_record) -> None:
    monkeypatch.setenv("POSSYNC_RETRIES", "3")
    http = _client("https://api.example.com")
    responses.add(responses.POST, PROCESS_SALE_URL, json={"message": "down"}, status=503)

    with pytest.raises(ServerError):
        SalesClient(http=http, access_token="token").submit_sale(make_record())
    assert len(responses.calls) == 1


@responses.activate
def test_submit_sale_maps_errors(make_record) -> None:
    http = _client("https://api.example.com")
    client = SalesClient(http=http, access_token="token")
    responses.add(responses.POST, PROCESS_SALE_URL, json={"code": "UNAUTHORIZED", "message": "expired"}, status=401)
    responses.add(responses.POST, PROCESS_SALE_URL, json={"code": "DUPLICATE_BILL", "message": "exists"}, status=409)
    responses.add(responses.POST, PROCESS_SALE_URL, json={"error": "Rice out of stock"}, status=400)

    with pytest.raises(AuthError):
        client.submit_sale(make_record("INV-1"))
    with pytest.raises(ConflictError) as conflict:
        client.submit_sale(make_record("INV-2"))
    assert conflict.value.code == "DUPLICATE_BILL"
    with pytest.raises(ValidationError):
        client.submit_sale(make_record("INV-3"))


@responses.activate
def test_submit_sale_transport_error(make_record) -> None:
    http = _client("https://api.example.com")
    responses.add(responses.POST, PROCESS_SALE_URL, body=requests.exceptions.ConnectionError("unreachable"))

    with pytest.raises(TransportError) as excinfo:
        SalesClient(http=http, access_token="token").submit_sale(make_record())
    assert excinfo.value.status_code == 0


@responses.activate
def test_list_sales_filters_by_user() -> None:
    http = _client("https://api.example.com")
    responses.add(
        responses.GET,
        "https://api.example.com/rest/v1/sales",
        json=[
            {
                "id": "s-1",
                "created_at": "2024-01-02T10:00:00Z",
                "customer_name": "A",
                "total_amount": 100,
                "bill_data": {"billId": "INV-1"},
                "user_id": "user-1",
            }
        ],
        status=200,
    )

    rows = SalesClient(http=http, access_token="token").list_sales(user_id="user-1", limit=20)

    assert rows[0].bill_id == "INV-1"
    params = responses.calls[0].request.params
    assert params["user_id"] == "eq.user-1"
    assert params["order"] == "created_at.desc"
    assert params["limit"] == "20"
