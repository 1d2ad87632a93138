"""Shared fixtures: an in-memory Shopify served through httpx.MockTransport."""

import json

import httpx
import pytest

from gql_bulk.core.bulk import BulkOperationRunner
from gql_bulk.core.config import AccessTokenCredentials, AuthenticationMode, ShopifySettings
from gql_bulk.core.executor import ShopifyClient

ENDPOINT = "https://test-shop.myshopify.com/admin/api/2025-07/graphql.json"
RESULT_URL = "https://storage.example.com/results/bulk.jsonl"
UPLOAD_URL = "https://storage.example.com/staged"
OPERATION_ID = "gid://shopify/BulkOperation/1"


def operation(status, url=None, **extra):
    return {"id": OPERATION_ID, "status": status, "url": url, **extra}


class FakeShopify:
    """Scripted Admin API plus the storage bucket holding staged and result files."""

    def __init__(self):
        self.graphql_calls: list[tuple[str, dict | None]] = []
        self.uploads: list[httpx.Request] = []
        self.downloads: list[str] = []

        self.user_errors: list[dict] = []
        self.initial_status = "CREATED"
        self.polls: list[dict] = [operation("COMPLETED", RESULT_URL)]
        self.poll_count = 0

        self.staged_targets = [
            {
                "url": UPLOAD_URL,
                "resourceUrl": UPLOAD_URL + "/tmp/bulk_op_vars",
                "parameters": [
                    {"name": "Content-Type", "value": "text/jsonl"},
                    {"name": "success_action_status", "value": "201"},
                    {"name": "key", "value": "tmp/21/bulk/bulk_op_vars"},
                    {"name": "policy", "value": "c2lnbmVk"},
                ],
            }
        ]
        self.upload_status = 201
        self.files: dict[str, bytes] = {}

    def calls_to(self, root_field: str) -> list[tuple[str, dict | None]]:
        return [call for call in self.graphql_calls if root_field in call[0]]

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        query, variables = body["query"], body.get("variables")
        self.graphql_calls.append((query, variables))

        if "currentBulkOperation" in query:
            status = self.polls[min(self.poll_count, len(self.polls) - 1)]
            self.poll_count += 1
            return httpx.Response(200, json={"data": {"currentBulkOperation": status}})

        if "stagedUploadsCreate" in query:
            payload = {"userErrors": [], "stagedTargets": self.staged_targets}
            return httpx.Response(200, json={"data": {"stagedUploadsCreate": payload}})

        for root_field in ("bulkOperationRunQuery", "bulkOperationRunMutation"):
            if root_field in query:
                bulk_operation = None if self.user_errors else operation(self.initial_status)
                payload = {"bulkOperation": bulk_operation, "userErrors": self.user_errors}
                return httpx.Response(200, json={"data": {root_field: payload}})

        return httpx.Response(200, json={"data": {"shop": {"name": "Test shop"}}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/graphql.json"):
            return self._graphql(request)

        if request.method == "POST" and str(request.url) == UPLOAD_URL:
            self.uploads.append(request)
            return httpx.Response(self.upload_status, text="<Error>denied</Error>")

        self.downloads.append(str(request.url))
        content = self.files.get(str(request.url))
        if content is None:
            return httpx.Response(404, text="Not Found")
        return httpx.Response(200, content=content)


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers every wait."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake():
    return FakeShopify()


@pytest.fixture
def transport(fake):
    return httpx.MockTransport(fake.handler)


@pytest.fixture
def settings():
    return ShopifySettings(
        authentication=AuthenticationMode.ACCESS_TOKEN,
        credentials=AccessTokenCredentials(shop_subdomain="test-shop", access_token="shpat_test"),
    )


@pytest.fixture
def client(settings, transport):
    return ShopifyClient(settings, transport=transport)


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def runner(client, transport, sleep):
    return BulkOperationRunner(
        client,
        sleep=sleep,
        http_client=httpx.AsyncClient(transport=transport),
    )
