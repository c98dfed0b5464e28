"""Host-side request writer."""

import logging

from agentbridge.core.errors import BridgeIOError, InvalidRequest
from agentbridge.core.protocol import RequestMessage, serialize_request
from agentbridge.core.transport import TransportLocation
from agentbridge.utils.fs import atomic_write_bytes, remove_if_exists

logger = logging.getLogger(__name__)


class RequestWriter:
    """Writes a request into the single request slot."""

    def __init__(self, location: TransportLocation):
        self.location = location

    def write(self, request: RequestMessage) -> None:
        """
        Write request.json, first discarding any stale response.

        A second write before the daemon picks up the first simply replaces
        it (last write wins).

        Raises:
            InvalidRequest: If the query is empty
            SerializationError: If the request cannot be encoded
            BridgeIOError: If a transport file cannot be removed or written
        """
        if not request.query or not request.query.strip():
            raise InvalidRequest("Query must not be empty")

        # Encode before touching the filesystem so a bad request changes nothing
        payload = serialize_request(request)

        try:
            if remove_if_exists(self.location.response_path):
                logger.debug("Removed stale response before sending request")
            atomic_write_bytes(self.location.request_path, payload)
        except OSError as e:
            raise BridgeIOError(f"Failed to write request: {e}") from e

        logger.info(f"Request {request.request_id} written to {self.location.request_path}")
