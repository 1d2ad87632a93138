"""Run a list of input items against one shop.

Each item is either an immediate GraphQL request or a bulk query, and its
output records are tagged with the item's index. When a bulk mutation is
given, the items instead only contribute one JSONL line each and a single
bulk mutation runs over all of them after the loop.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .bulk import BulkOperationRunner, OutputShape, to_jsonl_line
from .errors import ItemError
from .executor import GraphQLExecutor

logger = logging.getLogger(__name__)

LINE_NUMBER_KEY = "__lineNumber"


@dataclass
class BatchItem:
    """One input item."""
    query: str = ""
    variables: Mapping[str, Any] | str | None = None
    bulk: bool = False
    output: OutputShape = OutputShape.FLAT
    # Only read when the batch runs a bulk mutation
    mutation_variables: Mapping[str, Any] | str | None = None


@dataclass
class OutputItem:
    """One output record and the index of the item it came from."""
    json: dict[str, Any]
    item_index: int | None


def _line_item(line_items: list[int], line_number: Any) -> int | None:
    if isinstance(line_number, int) and 0 <= line_number < len(line_items):
        return line_items[line_number]
    return None


async def _run_item(
    client: GraphQLExecutor,
    runner: BulkOperationRunner,
    item: BatchItem,
    index: int,
) -> list[OutputItem]:
    if item.bulk:
        records = await runner.run_query(item.query, item.output)
        return [OutputItem(record, index) for record in records]

    response = await client.execute(item.query, item.variables)
    return [OutputItem(response, index)]


async def run_items(
    client: GraphQLExecutor,
    items: Iterable[BatchItem],
    *,
    bulk_mutation: str | None = None,
    continue_on_fail: bool = False,
    runner: BulkOperationRunner | None = None,
) -> list[OutputItem]:
    """Process items in order and collect their output.

    Args:
        client: Executor for the shop
        items: Input items
        bulk_mutation: Mutation text; switches the batch to one bulk
            mutation over every item's ``mutation_variables``
        continue_on_fail: Record a failing item as ``{"error": message}``
            instead of raising
        runner: Bulk runner to use; one with default settings otherwise

    Raises:
        ItemError: When an item fails and continue_on_fail is off
    """
    own_runner = runner is None
    if runner is None:
        runner = BulkOperationRunner(client)

    results: list[OutputItem] = []
    jsonl: list[str] = []
    # Item index of each JSONL line, for correlating __lineNumber
    line_items: list[int] = []
    try:
        for index, item in enumerate(items):
            try:
                if bulk_mutation is not None:
                    jsonl.append(to_jsonl_line(item.mutation_variables or {}))
                    line_items.append(index)
                else:
                    results.extend(await _run_item(client, runner, item, index))
            except Exception as exc:
                if not continue_on_fail:
                    raise ItemError(index, exc) from exc
                logger.warning(f"Item {index} failed: {exc}")
                results.append(OutputItem({"error": str(exc)}, index))

        if bulk_mutation is not None:
            records = await runner.run_mutation(bulk_mutation, jsonl)
            for record in records:
                results.append(OutputItem(record, _line_item(line_items, record.get(LINE_NUMBER_KEY))))
    finally:
        if own_runner:
            await runner.close()

    return results
