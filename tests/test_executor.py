"""Tests for the GraphQL executor."""

import json

import httpx
import pytest

from gql_bulk.core.auth import AccessTokenAuth, BasicAuth
from gql_bulk.core.config import AuthenticationMode, OAuth2Credentials, ShopifySettings
from gql_bulk.core.executor import (
    GraphQLError,
    GraphQLExecutor,
    ShopifyClient,
    build_endpoint,
    raise_for_graphql_errors,
)

URL = "https://example.myshopify.com/admin/api/2025-07/graphql.json"


class Recorder:
    """MockTransport handler returning a fixed response."""

    def __init__(self, response=None, status_code=200):
        self.requests: list[httpx.Request] = []
        self.response = response if response is not None else {"data": {"shop": {"name": "x"}}}
        self.status_code = status_code

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


class TestGraphQLExecutor:
    """Tests for GraphQLExecutor.execute."""

    @pytest.mark.asyncio
    async def test_posts_query(self):
        recorder = Recorder()
        async with GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            result = await executor.execute("{ shop { name } }")

        assert result == {"data": {"shop": {"name": "x"}}}
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["X-Shopify-Access-Token"] == "tok"
        assert request.headers["Content-Type"] == "application/json"
        assert recorder.bodies[0] == {"query": "{ shop { name } }"}

    @pytest.mark.asyncio
    async def test_variables_mapping(self):
        recorder = Recorder()
        async with GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            await executor.execute("query($first: Int, $after: String)", {"first": 10, "after": None})

        assert recorder.bodies[0]["variables"] == {"first": 10, "after": None}

    @pytest.mark.asyncio
    async def test_variables_json_string(self):
        recorder = Recorder()
        async with GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            await executor.execute("query($first: Int)", '{"first": 5}')
            await executor.execute("query", "  ")

        assert recorder.bodies[0]["variables"] == {"first": 5}
        assert "variables" not in recorder.bodies[1]

    @pytest.mark.asyncio
    async def test_explicit_null_sent(self):
        recorder = Recorder()
        async with GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            await executor.execute("query($first: Int, $after: String)", '{"first": 5, "after": null}')
            await executor.execute("{ shop { name } }", {})

        assert recorder.bodies[0]["variables"] == {"first": 5, "after": None}
        assert recorder.bodies[1]["variables"] == {}

    @pytest.mark.asyncio
    async def test_graphql_errors_are_returned(self):
        response = {"errors": [{"message": "Throttled"}]}
        recorder = Recorder(response)
        async with GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            assert await executor.execute("{ shop { name } }") == response

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        recorder = Recorder({"errors": "Invalid API key"}, status_code=401)
        async with GraphQLExecutor(URL, BasicAuth("k", "p"),
                                   transport=httpx.MockTransport(recorder)) as executor:
            with pytest.raises(httpx.HTTPStatusError):
                await executor.execute("{ shop { name } }")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        executor = GraphQLExecutor(URL, AccessTokenAuth("tok"),
                                   transport=httpx.MockTransport(Recorder()))
        await executor.execute("{ shop { name } }")
        await executor.close()
        await executor.close()


class TestShopifyClient:
    """Tests for the shop-bound client."""

    def test_endpoint(self, settings):
        client = ShopifyClient(settings)
        assert client.url == "https://test-shop.myshopify.com/admin/api/2025-07/graphql.json"

    def test_build_endpoint(self):
        assert build_endpoint("a", "2024-01") == "https://a.myshopify.com/admin/api/2024-01/graphql.json"

    @pytest.mark.asyncio
    async def test_oauth2_exchange_before_first_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == "/admin/oauth/access_token":
                return httpx.Response(200, json={"access_token": "issued"})
            return httpx.Response(200, json={"data": {}})

        settings = ShopifySettings(
            authentication=AuthenticationMode.OAUTH2,
            credentials=OAuth2Credentials(
                shop_subdomain="test-shop", client_id="id", client_secret="secret"
            ),
        )
        async with ShopifyClient(settings, transport=httpx.MockTransport(handler)) as client:
            await client.execute("{ shop { name } }")
            await client.execute("{ shop { name } }")

        assert [r.url.path for r in requests] == [
            "/admin/oauth/access_token",
            "/admin/api/2025-07/graphql.json",
            "/admin/api/2025-07/graphql.json",
        ]
        assert "X-Shopify-Access-Token" not in requests[0].headers
        assert requests[1].headers["X-Shopify-Access-Token"] == "issued"

    @pytest.mark.asyncio
    async def test_failed_exchange_retried_on_next_request(self):
        requests = []
        token_responses = [httpx.Response(503), httpx.Response(200, json={"access_token": "issued"})]

        def handler(request):
            requests.append(request)
            if request.url.path == "/admin/oauth/access_token":
                return token_responses.pop(0)
            return httpx.Response(200, json={"data": {}})

        settings = ShopifySettings(
            authentication=AuthenticationMode.OAUTH2,
            credentials=OAuth2Credentials(
                shop_subdomain="test-shop", client_id="id", client_secret="secret"
            ),
        )
        async with ShopifyClient(settings, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.execute("{ shop { name } }")
            await client.execute("{ shop { name } }")

        assert [r.url.path for r in requests] == [
            "/admin/oauth/access_token",
            "/admin/oauth/access_token",
            "/admin/api/2025-07/graphql.json",
        ]
        assert requests[2].headers["X-Shopify-Access-Token"] == "issued"


class TestRaiseForGraphQLErrors:
    """Tests for promoting top-level errors."""

    def test_returns_data(self):
        assert raise_for_graphql_errors({"data": {"a": 1}}) == {"a": 1}

    def test_missing_data(self):
        assert raise_for_graphql_errors({"data": None}) == {}

    def test_raises(self):
        errors = [{"message": "first"}, {"message": "second"}]
        with pytest.raises(GraphQLError) as exc_info:
            raise_for_graphql_errors({"errors": errors})
        assert exc_info.value.errors == errors
        assert str(exc_info.value) == "GraphQL errors: first; second"
