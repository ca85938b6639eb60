import json

import httpx
import pytest

from order_notifier import Settings


class FakeBackend:
    """Serves Magento order pages and records Cliq webhook posts."""

    def __init__(self, pages=None, order_status=200, webhook_statuses=None):
        self.pages = pages or []
        self.order_status = order_status
        self.webhook_statuses = list(webhook_statuses or [])
        self.order_requests = []
        self.webhook_requests = []

    @property
    def messages(self):
        return [json.loads(r.content)["text"] for r in self.webhook_requests]

    def handler(self, request):
        if request.url.path == "/rest/V1/orders":
            self.order_requests.append(request)
            page = int(request.url.params["searchCriteria[currentPage]"])
            if isinstance(self.order_status, dict):
                status = self.order_status.get(page, 200)
            else:
                status = self.order_status
            if status != 200:
                return httpx.Response(status, text="error")
            items = self.pages[page - 1] if page <= len(self.pages) else []
            return httpx.Response(200, json={"items": items})

        self.webhook_requests.append(request)
        status = self.webhook_statuses.pop(0) if self.webhook_statuses else 200
        return httpx.Response(status, text="{}" if status < 300 else "internal error")

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    return Settings(
        magento_host="https://shop.example.com",
        magento_token="magento-token",
        cliq_endpoint="https://cliq.example.com/api/v2/bots/orders/incoming",
        cliq_webhook_token="zapi-key",
    )


@pytest.fixture
def backend_factory():
    return FakeBackend
