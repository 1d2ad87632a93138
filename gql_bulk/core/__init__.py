"""Core modules for running Shopify bulk operations."""

from .auth import (
    AccessTokenAuth,
    Auth,
    BasicAuth,
    OAuth2Auth,
    TokenExchange,
    resolve_auth,
)
from .batch import BatchItem, OutputItem, run_items
from .bulk import (
    BulkOperation,
    BulkOperationRunner,
    BulkOperationStatus,
    BulkOperationType,
    OutputShape,
    StagedTarget,
    to_jsonl_line,
)
from .config import (
    AccessTokenCredentials,
    ApiKeyCredentials,
    AuthenticationMode,
    OAuth2Credentials,
    ShopifySettings,
)
from .errors import (
    AuthenticationError,
    BulkError,
    InvalidDelimiterError,
    InvalidSchemeError,
    ItemError,
    PollCancelledError,
    SubmissionError,
    TransportError,
    UploadError,
)
from .executor import (
    GraphQLError,
    GraphQLExecutor,
    ShopifyClient,
    build_endpoint,
    raise_for_graphql_errors,
)
from .lines import RetrievalPolicy, fetch_lines, iter_lines
from .tree import FlatRecord, array_key, flat_to_tree, tree_to_flat

__all__ = [
    # Auth
    "Auth",
    "TokenExchange",
    "BasicAuth",
    "AccessTokenAuth",
    "OAuth2Auth",
    "resolve_auth",
    # Config
    "AuthenticationMode",
    "ApiKeyCredentials",
    "AccessTokenCredentials",
    "OAuth2Credentials",
    "ShopifySettings",
    # Errors
    "AuthenticationError",
    "BulkError",
    "InvalidDelimiterError",
    "InvalidSchemeError",
    "ItemError",
    "PollCancelledError",
    "SubmissionError",
    "TransportError",
    "UploadError",
    # Executor
    "GraphQLError",
    "GraphQLExecutor",
    "ShopifyClient",
    "build_endpoint",
    "raise_for_graphql_errors",
    # Lines
    "RetrievalPolicy",
    "fetch_lines",
    "iter_lines",
    # Bulk
    "BulkOperation",
    "BulkOperationRunner",
    "BulkOperationStatus",
    "BulkOperationType",
    "OutputShape",
    "StagedTarget",
    "to_jsonl_line",
    # Tree
    "FlatRecord",
    "array_key",
    "flat_to_tree",
    "tree_to_flat",
    # Batch
    "BatchItem",
    "OutputItem",
    "run_items",
]
