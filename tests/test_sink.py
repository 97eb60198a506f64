import json

import pytest
import requests

from fakes import make_payload
from indexer.sink import DeliveryError, MemorySink, WebhookSink


@pytest.mark.asyncio
async def test_memory_sink_keeps_order():
    sink = MemorySink()
    for i in range(3):
        await sink.push(make_payload(i))
    assert [p.event.tx_index for p in sink.payloads] == [0, 1, 2]


class FakeResp:
    def __init__(self, status_code=200):
        self.status_code = status_code


@pytest.mark.asyncio
async def test_webhook_posts_json_with_idempotency_key(monkeypatch):
    sent = []

    def fake_post(url, data, headers, timeout):
        sent.append((url, data, headers, timeout))
        return FakeResp(204)

    monkeypatch.setattr(requests, "post", fake_post)
    payload = make_payload(2)
    await WebhookSink("https://push.test/events", token="tkn", timeout=3).push(payload)

    url, data, headers, timeout = sent[0]
    assert url == "https://push.test/events"
    assert timeout == 3
    assert headers["Authorization"] == "Bearer tkn"
    assert headers["Idempotency-Key"] == payload.dedupe_key
    body = json.loads(data)
    assert body["network"] == "ethereum"
    assert body["event"]["name"] == "CreateAddress"
    assert body["data"]["kind"] == "address"


@pytest.mark.asyncio
async def test_webhook_without_token_sends_no_auth(monkeypatch):
    sent = []
    monkeypatch.setattr(requests, "post", lambda url, data, headers, timeout: sent.append(headers) or FakeResp())
    await WebhookSink("https://push.test/events").push(make_payload())
    assert "Authorization" not in sent[0]


@pytest.mark.asyncio
async def test_webhook_rejection_is_transient(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResp(500))
    with pytest.raises(DeliveryError):
        await WebhookSink("https://push.test/events").push(make_payload())


@pytest.mark.asyncio
async def test_webhook_connection_error_is_transient(monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", boom)
    with pytest.raises(DeliveryError):
        await WebhookSink("https://push.test/events").push(make_payload())
