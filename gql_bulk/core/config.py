"""Connection settings for the Shopify Admin GraphQL API.

Settings can be built directly, or read from ``SHOPIFY_*`` environment
variables:

    SHOPIFY_SHOP            shop subdomain (``my-shop`` for my-shop.myshopify.com)
    SHOPIFY_API_VERSION     Admin API version, e.g. ``2025-07``
    SHOPIFY_AUTH            one of ``apiKey``, ``accessToken``, ``oAuth2``
    SHOPIFY_ACCESS_TOKEN    access token (accessToken, optional for oAuth2)
    SHOPIFY_API_KEY         API key (apiKey)
    SHOPIFY_PASSWORD        API password (apiKey)
    SHOPIFY_CLIENT_ID       OAuth2 client id
    SHOPIFY_CLIENT_SECRET   OAuth2 client secret
"""

import os
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, model_validator

DEFAULT_API_VERSION = "2025-07"
DEFAULT_POLL_INTERVAL = 1.0


class AuthenticationMode(str, Enum):
    """How requests to the Admin API are authenticated."""
    API_KEY = "apiKey"
    ACCESS_TOKEN = "accessToken"
    OAUTH2 = "oAuth2"


class ApiKeyCredentials(BaseModel):
    shop_subdomain: str
    api_key: str
    password: str


class AccessTokenCredentials(BaseModel):
    shop_subdomain: str
    access_token: str


class OAuth2Credentials(BaseModel):
    shop_subdomain: str
    client_id: str
    client_secret: str
    # Pre-issued token; skips the client credentials exchange when set
    access_token: str | None = None


Credentials = ApiKeyCredentials | AccessTokenCredentials | OAuth2Credentials

CREDENTIALS_BY_MODE: dict[AuthenticationMode, type[BaseModel]] = {
    AuthenticationMode.API_KEY: ApiKeyCredentials,
    AuthenticationMode.ACCESS_TOKEN: AccessTokenCredentials,
    AuthenticationMode.OAUTH2: OAuth2Credentials,
}


class ShopifySettings(BaseModel):
    """Everything needed to talk to one shop."""

    authentication: AuthenticationMode = AuthenticationMode.API_KEY
    api_version: str = DEFAULT_API_VERSION
    credentials: Credentials
    timeout: float = 30.0
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @model_validator(mode="after")
    def _check_credentials(self) -> "ShopifySettings":
        expected = CREDENTIALS_BY_MODE[self.authentication]
        if not isinstance(self.credentials, expected):
            raise ValueError(
                f"Authentication '{self.authentication.value}' requires "
                f"{expected.__name__}, got {type(self.credentials).__name__}"
            )
        return self

    @property
    def shop_subdomain(self) -> str:
        return self.credentials.shop_subdomain

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ShopifySettings":
        """Build settings from ``SHOPIFY_*`` environment variables."""
        env = os.environ if environ is None else environ
        mode = AuthenticationMode(env.get("SHOPIFY_AUTH", AuthenticationMode.API_KEY.value))
        shop = env.get("SHOPIFY_SHOP", "")

        if mode is AuthenticationMode.API_KEY:
            credentials = ApiKeyCredentials(
                shop_subdomain=shop,
                api_key=env.get("SHOPIFY_API_KEY", ""),
                password=env.get("SHOPIFY_PASSWORD", ""),
            )
        elif mode is AuthenticationMode.ACCESS_TOKEN:
            credentials = AccessTokenCredentials(
                shop_subdomain=shop,
                access_token=env.get("SHOPIFY_ACCESS_TOKEN", ""),
            )
        else:
            credentials = OAuth2Credentials(
                shop_subdomain=shop,
                client_id=env.get("SHOPIFY_CLIENT_ID", ""),
                client_secret=env.get("SHOPIFY_CLIENT_SECRET", ""),
                access_token=env.get("SHOPIFY_ACCESS_TOKEN") or None,
            )

        return cls(
            authentication=mode,
            api_version=env.get("SHOPIFY_API_VERSION", DEFAULT_API_VERSION),
            credentials=credentials,
        )
