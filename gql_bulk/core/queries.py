"""GraphQL documents for the bulk operation lifecycle.

User supplied query and mutation text is passed through variables rather
than spliced into these documents.
"""

from graphql import GraphQLSyntaxError, parse

from .errors import SubmissionError

BULK_OPERATION_FIELDS = """
    id
    status
    errorCode
    createdAt
    completedAt
    objectCount
    fileSize
    url
    partialDataUrl
"""

BULK_OPERATION_RUN_QUERY = """
mutation BulkOperationRunQuery($query: String!) {
  bulkOperationRunQuery(query: $query) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

BULK_OPERATION_RUN_MUTATION = """
mutation BulkOperationRunMutation($mutation: String!, $stagedUploadPath: String!) {
  bulkOperationRunMutation(mutation: $mutation, stagedUploadPath: $stagedUploadPath) {
    bulkOperation {
      id
      url
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

STAGED_UPLOADS_CREATE = """
mutation StagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    userErrors {
      field
      message
    }
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
  }
}
"""

STAGED_UPLOAD_INPUT = {
    "resource": "BULK_MUTATION_VARIABLES",
    "filename": "bulk_op_vars",
    "mimeType": "text/jsonl",
    "httpMethod": "POST",
}


def current_bulk_operation(operation_type: str) -> str:
    """Status query for the shop's current bulk operation of one type."""
    return f"""
query {{
  currentBulkOperation(type: {operation_type}) {{{BULK_OPERATION_FIELDS}  }}
}}
"""


def validate_document(text: str) -> str:
    """Check that text parses as a GraphQL document.

    Returns the stripped text.

    Raises:
        SubmissionError: On empty input or a syntax error
    """
    text = text.strip() if text else ""
    if not text:
        raise SubmissionError("GraphQL document is empty")
    try:
        parse(text)
    except GraphQLSyntaxError as exc:
        raise SubmissionError(f"Invalid GraphQL document: {exc.message}") from exc
    return text
