"""Bulk operation lifecycle: submit, poll, retrieve.

A bulk query is submitted with ``bulkOperationRunQuery``. A bulk mutation
first uploads its variables as a JSONL file to a staged upload target and
is then submitted with ``bulkOperationRunMutation``. Both are polled on a
fixed interval through ``currentBulkOperation`` until they leave
CREATED/RUNNING, and their JSONL result file is streamed back.

Example:
    async with ShopifyClient(settings) as client:
        async with BulkOperationRunner(client) as runner:
            products = await runner.run_query(PRODUCTS, output=OutputShape.TREE)
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import DEFAULT_POLL_INTERVAL
from .errors import PollCancelledError, SubmissionError, UploadError
from .executor import GraphQLError, GraphQLExecutor, raise_for_graphql_errors
from .lines import RetrievalPolicy, fetch_lines
from .queries import (
    BULK_OPERATION_RUN_MUTATION,
    BULK_OPERATION_RUN_QUERY,
    STAGED_UPLOAD_INPUT,
    STAGED_UPLOADS_CREATE,
    current_bulk_operation,
    validate_document,
)
from .tree import flat_to_tree

logger = logging.getLogger(__name__)

JSONL_CONTENT_TYPE = "text/jsonl"


class BulkOperationStatus(str, Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    CANCELING = "CANCELING"
    EXPIRED = "EXPIRED"


ACTIVE_STATUSES = frozenset({BulkOperationStatus.CREATED, BulkOperationStatus.RUNNING})


class BulkOperationType(str, Enum):
    QUERY = "QUERY"
    MUTATION = "MUTATION"


class OutputShape(str, Enum):
    """Shape of bulk query results."""
    FLAT = "flat"  # records as returned, children carry __parentId
    TREE = "tree"  # children nested under their parents


class _GraphQLModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkOperation(_GraphQLModel):
    """Snapshot of a bulk operation as last reported by the platform."""
    id: str | None = None
    status: BulkOperationStatus
    url: str | None = None
    error_code: str | None = None
    created_at: str | None = None
    completed_at: str | None = None
    object_count: int | None = None
    file_size: int | None = None
    partial_data_url: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status not in ACTIVE_STATUSES


class StagedParameter(_GraphQLModel):
    name: str
    value: str


class StagedTarget(_GraphQLModel):
    url: str
    resource_url: str | None = None
    parameters: list[StagedParameter] = Field(default_factory=list)

    @property
    def key(self) -> str | None:
        """Storage key of the staged file, used as the stagedUploadPath."""
        for parameter in self.parameters:
            if parameter.name == "key":
                return parameter.value
        return None


def to_jsonl_line(value: Mapping[str, Any] | str) -> str:
    """Serialize one mutation input as a compact single JSONL line."""
    if isinstance(value, str):
        value = json.loads(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False) + "\n"


def _raise_for_user_errors(payload: Mapping[str, Any], action: str) -> None:
    user_errors = payload.get("userErrors") or []
    if user_errors:
        messages = ", ".join(e.get("message", str(e)) for e in user_errors)
        raise SubmissionError(f"Error running {action}: {messages}", user_errors)


class BulkOperationRunner:
    """Drives bulk queries and bulk mutations to completion.

    Args:
        client: Executor for the shop's Admin API
        poll_interval: Seconds between status polls
        sleep: Coroutine used to wait between polls
        http_client: Unauthenticated client for staged uploads and result
            files; a private one is created otherwise
        retrieval_policy: Whether an unreachable result file raises or
            yields no records
        cancel_event: Stops polling with PollCancelledError once set
    """

    def __init__(
        self,
        client: GraphQLExecutor,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_client: httpx.AsyncClient | None = None,
        retrieval_policy: RetrievalPolicy = RetrievalPolicy.BEST_EFFORT,
        cancel_event: asyncio.Event | None = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.retrieval_policy = retrieval_policy
        self.cancel_event = cancel_event
        self._sleep = sleep
        self._http_client = http_client
        self._owns_http_client = http_client is None

    async def __aenter__(self) -> "BulkOperationRunner":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client if this runner created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))
        return self._http_client

    async def _request(
        self,
        query: str,
        variables: dict[str, Any] | None,
        root_field: str,
    ) -> dict[str, Any]:
        """Execute a request and return the payload under its root field."""
        response = await self.client.execute(query, variables)
        payload = (response.get("data") or {}).get(root_field)
        if payload is None:
            raise_for_graphql_errors(response)
            raise GraphQLError(f"Response has no '{root_field}' payload", [])
        return payload

    # Lifecycle steps

    async def submit_query(self, query: str) -> BulkOperation:
        """Start a bulk query and return its initial handle."""
        query = validate_document(query)
        payload = await self._request(
            BULK_OPERATION_RUN_QUERY, {"query": query}, "bulkOperationRunQuery"
        )
        _raise_for_user_errors(payload, "bulk query")

        operation = BulkOperation.model_validate(payload["bulkOperation"])
        logger.info(f"Bulk query {operation.id} submitted ({operation.status.value})")
        return operation

    async def submit_mutation(self, mutation: str, staged_upload_path: str) -> BulkOperation:
        """Start a bulk mutation over an already uploaded variables file."""
        payload = await self._request(
            BULK_OPERATION_RUN_MUTATION,
            {"mutation": mutation, "stagedUploadPath": staged_upload_path},
            "bulkOperationRunMutation",
        )
        _raise_for_user_errors(payload, "bulk mutation")

        operation = BulkOperation.model_validate(payload["bulkOperation"])
        logger.info(f"Bulk mutation {operation.id} submitted ({operation.status.value})")
        return operation

    async def _wait(self, operation: BulkOperation) -> None:
        if self.cancel_event is None:
            await self._sleep(self.poll_interval)
            return

        if self.cancel_event.is_set():
            raise PollCancelledError(operation)
        sleeper = asyncio.ensure_future(self._sleep(self.poll_interval))
        cancelled = asyncio.ensure_future(self.cancel_event.wait())
        done, pending = await asyncio.wait(
            {sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if cancelled in done:
            raise PollCancelledError(operation)

    async def poll(
        self,
        operation: BulkOperation,
        operation_type: BulkOperationType,
    ) -> BulkOperation:
        """Wait until the operation leaves CREATED/RUNNING.

        There is no deadline: polling continues for as long as the platform
        reports the operation as active.
        """
        status_query = current_bulk_operation(operation_type.value)
        while not operation.is_terminal:
            await self._wait(operation)
            payload = await self._request(status_query, None, "currentBulkOperation")
            operation = BulkOperation.model_validate(payload)
            logger.info(f"Bulk operation {operation.id} status: {operation.status.value}")
        return operation

    async def stream_results(self, operation: BulkOperation) -> AsyncIterator[dict[str, Any]]:
        """Yield one parsed record per non-empty line of the result file."""
        if not operation.url:
            if operation.status is BulkOperationStatus.COMPLETED:
                logger.info(f"Bulk operation {operation.id} completed with no results")
            else:
                logger.warning(
                    f"Bulk operation {operation.id} ended {operation.status.value} "
                    f"without results (errorCode: {operation.error_code})"
                )
            return

        logger.info(f"Downloading results of bulk operation {operation.id}")
        async for line in fetch_lines(
            operation.url,
            client=self._get_http_client(),
            policy=self.retrieval_policy,
        ):
            if line:
                yield json.loads(line)

    async def stage_upload(self) -> StagedTarget:
        """Reserve a staged upload target for bulk mutation variables."""
        payload = await self._request(
            STAGED_UPLOADS_CREATE, {"input": [STAGED_UPLOAD_INPUT]}, "stagedUploadsCreate"
        )
        _raise_for_user_errors(payload, "staged upload")

        targets = payload.get("stagedTargets") or []
        if len(targets) != 1:
            raise SubmissionError(f"Expected exactly one staged upload target, got {len(targets)}")
        return StagedTarget.model_validate(targets[0])

    async def upload(self, target: StagedTarget, lines: Iterable[str]) -> None:
        """Post the JSONL payload to the staged target.

        The signed parameters are sent as form fields in the order given,
        followed by the file part.
        """
        payload = "".join(line if line.endswith("\n") else line + "\n" for line in lines)
        # Names may repeat; every parameter is its own part
        parts = [(parameter.name, (None, parameter.value)) for parameter in target.parameters]
        parts.append(("file", ("bulk_op_vars", payload.encode("utf-8"), JSONL_CONTENT_TYPE)))

        client = self._get_http_client()
        response = await client.post(target.url, files=parts)
        if not response.is_success:
            raise UploadError(response.status_code, response.reason_phrase, response.text)
        logger.info(f"Uploaded {len(payload)} characters of mutation variables")

    # Complete runs

    async def run_query(
        self,
        query: str,
        output: OutputShape | str = OutputShape.FLAT,
    ) -> list[dict[str, Any]]:
        """Run a bulk query and return its records."""
        output = OutputShape(output)
        operation = await self.submit_query(query)
        operation = await self.poll(operation, BulkOperationType.QUERY)

        records = [record async for record in self.stream_results(operation)]
        if output is OutputShape.TREE:
            return flat_to_tree(records)
        return records

    async def run_mutation(self, mutation: str, lines: Iterable[str]) -> list[dict[str, Any]]:
        """Run one bulk mutation over every JSONL line and return its results."""
        mutation = validate_document(mutation)
        lines = list(lines)

        target = await self.stage_upload()
        if not target.key:
            raise SubmissionError("Staged upload target has no 'key' parameter")
        await self.upload(target, lines)

        operation = await self.submit_mutation(mutation, target.key)
        operation = await self.poll(operation, BulkOperationType.MUTATION)
        return [record async for record in self.stream_results(operation)]
