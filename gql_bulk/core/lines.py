"""Read a remote text file line by line over HTTP(S).

The decoder keeps a rolling text buffer and never assumes that delimiters
line up with chunk boundaries, so the same lines come out however the
bytes were chunked on the wire.

Example:
    async for line in fetch_lines(operation.url, include_last_empty_line=False):
        record = json.loads(line)
"""

import codecs
import logging
import re
from enum import Enum
from typing import AsyncIterable, AsyncIterator

import httpx

from .errors import InvalidDelimiterError, InvalidSchemeError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = re.compile(r"\r?\n")


class RetrievalPolicy(Enum):
    """What to do when a result stream cannot be opened."""
    STRICT = "strict"            # raise TransportError
    BEST_EFFORT = "best_effort"  # log a warning and yield no lines


def compile_delimiter(delimiter: str | re.Pattern) -> re.Pattern:
    """Turn a delimiter into a pattern.

    Strings are matched literally and must not be empty. Patterns are used
    as given, with their own flags.
    """
    if isinstance(delimiter, str):
        if delimiter == "":
            raise InvalidDelimiterError("delimiter cannot be empty string!")
        return re.compile(re.escape(delimiter))
    return delimiter


def check_scheme(url: str) -> None:
    """Reject anything that is not an http(s) URL."""
    try:
        scheme = httpx.URL(url).scheme
    except httpx.InvalidURL as exc:
        raise InvalidSchemeError(url) from exc
    if scheme not in ("http", "https"):
        raise InvalidSchemeError(url)


async def iter_lines(
    chunks: AsyncIterable[bytes],
    *,
    include_last_empty_line: bool = True,
    encoding: str = "utf-8",
    delimiter: str | re.Pattern = DEFAULT_DELIMITER,
) -> AsyncIterator[str]:
    """Split a stream of byte chunks into decoded lines.

    Args:
        chunks: Any async iterable of bytes
        include_last_empty_line: Yield the text after the last delimiter
            even when it is empty
        encoding: Text encoding of the stream
        delimiter: Literal string or compiled pattern separating lines

    Yields:
        Each line without its delimiter
    """
    pattern = compile_delimiter(delimiter)
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    reader = chunks.__aiter__()

    buffer = ""
    start = 0
    exhausted = False

    while True:
        match = pattern.search(buffer, start)
        if match is None:
            if exhausted:
                break
            remainder = buffer[start:]
            try:
                chunk = await reader.__anext__()
            except StopAsyncIteration:
                exhausted = True
                chunk = b""
            buffer = remainder + decoder.decode(chunk, final=exhausted)
            start = 0
            continue

        if match.end() == match.start():
            raise InvalidDelimiterError(
                f"delimiter {pattern.pattern!r} matched an empty string"
            )
        yield buffer[start:match.start()]
        start = match.end()

    if include_last_empty_line or start < len(buffer):
        yield buffer[start:]


async def _open_stream(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """Send the GET and make sure there is a body to read."""
    request = client.build_request("GET", url)
    try:
        response = await client.send(request, stream=True)
    except httpx.TransportError as exc:
        raise TransportError(f"Could not fetch {url}: {exc}", url) from exc

    if not response.is_success:
        await response.aclose()
        raise TransportError(
            f"HTTP Status: {response.status_code}", url, status_code=response.status_code
        )
    if response.status_code == 204:
        await response.aclose()
        raise TransportError("Response body is null", url, status_code=response.status_code)
    return response


async def fetch_lines(
    url: str,
    *,
    include_last_empty_line: bool = True,
    encoding: str = "utf-8",
    delimiter: str | re.Pattern = DEFAULT_DELIMITER,
    client: httpx.AsyncClient | None = None,
    policy: RetrievalPolicy = RetrievalPolicy.STRICT,
    chunk_size: int | None = None,
) -> AsyncIterator[str]:
    """Fetch a remote text file and yield it line by line.

    Args:
        url: http or https URL of the file
        include_last_empty_line: Should it count the last empty line?
        encoding: File encoding
        delimiter: Line delimiter, literal string or compiled pattern
        client: httpx client to use; a private one is created otherwise
        policy: Whether an unreachable URL raises or yields nothing
        chunk_size: Read size passed to httpx

    Raises:
        InvalidSchemeError: If the URL is not http(s)
        InvalidDelimiterError: If the delimiter is an empty string
        TransportError: If the file cannot be fetched under STRICT policy
    """
    check_scheme(url)
    compile_delimiter(delimiter)

    own_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))

    try:
        try:
            response = await _open_stream(client, url)
        except TransportError as exc:
            if policy is RetrievalPolicy.STRICT:
                raise
            logger.warning(f"Skipping unreachable result stream: {exc}")
            return

        try:
            async for line in iter_lines(
                response.aiter_bytes(chunk_size),
                include_last_empty_line=include_last_empty_line,
                encoding=encoding,
                delimiter=delimiter,
            ):
                yield line
        finally:
            await response.aclose()
    finally:
        if own_client:
            await client.aclose()
