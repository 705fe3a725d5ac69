"""
GraphQL query execution over the administrative channel.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from lldap_client.errors import GraphQLError, TransportError, remote_error
from lldap_client.session import GRAPHQL_PATH, TransportSession

logger = logging.getLogger(__name__)


class GraphQLQuery:
    """A named query or mutation together with its variables."""

    def __init__(self, operation_name: str, query: str, variables: Optional[Dict[str, Any]] = None):
        self.operation_name = operation_name
        self.query = query
        self.variables = variables

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'operationName': self.operation_name,
            'variables': self.variables,
        }


class GraphQLResponse:
    """
    The ``{data, errors}`` envelope of a GraphQL answer.

    ``data`` may be null and must not be trusted unless ``errors`` is empty.
    """

    def __init__(self, data: Optional[Dict[str, Any]], errors: List[GraphQLError], raw: str = ''):
        self.data = data
        self.errors = errors
        self.raw = raw

    @classmethod
    def parse(cls, body: str) -> 'GraphQLResponse':
        """
        Parse a response body into an envelope.

        Raises:
            TransportError: If the body is not a JSON object
        """
        try:
            envelope = json.loads(body)
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON response: {e}", status_code=200, body=body) from e
        if not isinstance(envelope, dict):
            raise TransportError("Malformed GraphQL envelope", status_code=200, body=body)

        errors = [GraphQLError.from_dict(e) for e in envelope.get('errors') or []]
        return cls(envelope.get('data'), errors, raw=body)

    @property
    def ok(self) -> bool:
        return not self.errors

    def field(self, *path: str) -> Any:
        """
        Walk ``data`` along ``path``.

        Raises:
            TransportError: If a step of the path is missing
        """
        current = self.data
        for key in path:
            if not isinstance(current, dict) or key not in current:
                raise TransportError(
                    f"GraphQL response missing field {'.'.join(path)}",
                    status_code=200,
                    body=self.raw,
                )
            current = current[key]
        return current


class QueryExecutor:
    """Runs one GraphQL operation at a time through a transport session."""

    def __init__(self, session: TransportSession):
        self.session = session

    def execute(self, query: GraphQLQuery) -> GraphQLResponse:
        """
        Execute ``query`` and return its envelope.

        Raises:
            TransportError: On network failures, non-200 answers or malformed bodies
            RemoteOperationError: If the envelope carries a non-empty error list
        """
        token = self.session.ensure_token()

        logger.debug(f"Executing GraphQL operation {query.operation_name}")
        status, body = self.session.post_json(GRAPHQL_PATH, query.to_dict(), token=token)

        if status != 200:
            raise TransportError(
                f"Unexpected HTTP status code in response: {status} - {body}",
                status_code=status,
                body=body,
            )

        response = GraphQLResponse.parse(body)
        if response.errors:
            raise remote_error(query.operation_name, response.errors)
        return response
