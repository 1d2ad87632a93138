"""Command-line interface for gql-bulk."""

import asyncio
import json
import logging
from pathlib import Path

import click
import httpx
from pydantic import ValidationError

from .core.bulk import BulkOperationRunner, OutputShape, to_jsonl_line
from .core.config import (
    DEFAULT_API_VERSION,
    DEFAULT_POLL_INTERVAL,
    AccessTokenCredentials,
    ApiKeyCredentials,
    AuthenticationMode,
    OAuth2Credentials,
    ShopifySettings,
)
from .core.errors import BulkError
from .core.executor import GraphQLError, ShopifyClient

_REQUIRED = {
    AuthenticationMode.API_KEY: ("api_key", "password"),
    AuthenticationMode.ACCESS_TOKEN: ("access_token",),
    AuthenticationMode.OAUTH2: ("client_id", "client_secret"),
}


def shop_options(func):
    """Connection options shared by every command."""
    options = [
        click.option("--shop", envvar="SHOPIFY_SHOP", required=True,
                     help="Shop subdomain (my-shop for my-shop.myshopify.com)."),
        click.option("--api-version", envvar="SHOPIFY_API_VERSION", default=DEFAULT_API_VERSION,
                     show_default=True, help="Admin API version."),
        click.option("--auth", "authentication", envvar="SHOPIFY_AUTH",
                     type=click.Choice([m.value for m in AuthenticationMode]),
                     default=AuthenticationMode.API_KEY.value, show_default=True,
                     help="Authentication mode."),
        click.option("--access-token", envvar="SHOPIFY_ACCESS_TOKEN", help="Admin API access token."),
        click.option("--api-key", envvar="SHOPIFY_API_KEY", help="Private app API key."),
        click.option("--password", envvar="SHOPIFY_PASSWORD", help="Private app password."),
        click.option("--client-id", envvar="SHOPIFY_CLIENT_ID", help="OAuth2 client id."),
        click.option("--client-secret", envvar="SHOPIFY_CLIENT_SECRET", help="OAuth2 client secret."),
        click.option("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL, show_default=True,
                     help="Seconds between bulk operation status polls."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_settings(
    shop: str,
    api_version: str,
    authentication: str,
    access_token: str | None,
    api_key: str | None,
    password: str | None,
    client_id: str | None,
    client_secret: str | None,
    poll_interval: float,
) -> ShopifySettings:
    """Turn command-line options into settings."""
    mode = AuthenticationMode(authentication)
    given = {
        "access_token": access_token,
        "api_key": api_key,
        "password": password,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    missing = [name for name in _REQUIRED[mode] if not given[name]]
    if missing:
        flags = ", ".join("--" + name.replace("_", "-") for name in missing)
        raise click.UsageError(f"Authentication '{mode.value}' needs {flags}")

    if mode is AuthenticationMode.API_KEY:
        credentials = ApiKeyCredentials(shop_subdomain=shop, api_key=api_key, password=password)
    elif mode is AuthenticationMode.ACCESS_TOKEN:
        credentials = AccessTokenCredentials(shop_subdomain=shop, access_token=access_token)
    else:
        credentials = OAuth2Credentials(
            shop_subdomain=shop,
            client_id=client_id,
            client_secret=client_secret,
            access_token=access_token,
        )

    try:
        return ShopifySettings(
            authentication=mode,
            api_version=api_version,
            credentials=credentials,
            poll_interval=poll_interval,
        )
    except ValidationError as exc:
        raise click.UsageError(str(exc))


def _run(coro):
    """Run a coroutine, turning expected failures into click errors."""
    try:
        return asyncio.run(coro)
    except (BulkError, GraphQLError, httpx.HTTPError, json.JSONDecodeError) as exc:
        raise click.ClickException(str(exc))


def _echo_jsonl(records):
    for record in records:
        click.echo(json.dumps(record, ensure_ascii=False))


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Log bulk operation progress.")
def main(verbose: bool):
    """Run Shopify GraphQL requests and bulk operations.

    Bulk operations are polled until they finish and their JSONL
    results are written to standard output.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("query_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--variables", default=None, help="Variables as a JSON object.")
@shop_options
def execute(query_file: str, variables: str | None, **options):
    """Execute a single GraphQL query or mutation.

    Examples:

        gql-bulk execute products.graphql --shop my-shop --auth accessToken
    """
    settings = build_settings(**options)
    query = Path(query_file).read_text()

    async def run():
        async with ShopifyClient(settings) as client:
            return await client.execute(query, variables)

    click.echo(json.dumps(_run(run()), indent=2, ensure_ascii=False))


@main.command("bulk-query")
@click.argument("query_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tree", is_flag=True, help="Nest child records under their parents.")
@shop_options
def bulk_query(query_file: str, tree: bool, **options):
    """Run a bulk query and print its records as JSONL.

    Examples:

        gql-bulk bulk-query products.graphql --shop my-shop --tree
    """
    settings = build_settings(**options)
    query = Path(query_file).read_text()
    output = OutputShape.TREE if tree else OutputShape.FLAT

    async def run():
        async with ShopifyClient(settings) as client:
            async with BulkOperationRunner(client, poll_interval=settings.poll_interval) as runner:
                return await runner.run_query(query, output)

    _echo_jsonl(_run(run()))


@main.command("bulk-mutation")
@click.argument("mutation_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("variables_file", type=click.Path(exists=True, dir_okay=False))
@shop_options
def bulk_mutation(mutation_file: str, variables_file: str, **options):
    """Run one bulk mutation over every line of a JSONL variables file.

    Examples:

        gql-bulk bulk-mutation product_set.graphql inputs.jsonl --shop my-shop
    """
    settings = build_settings(**options)
    mutation = Path(mutation_file).read_text()

    try:
        lines = [
            to_jsonl_line(line)
            for line in Path(variables_file).read_text().splitlines()
            if line.strip()
        ]
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{variables_file}: {exc}", param_hint="VARIABLES_FILE")

    async def run():
        async with ShopifyClient(settings) as client:
            async with BulkOperationRunner(client, poll_interval=settings.poll_interval) as runner:
                return await runner.run_mutation(mutation, lines)

    _echo_jsonl(_run(run()))


if __name__ == "__main__":
    main()
