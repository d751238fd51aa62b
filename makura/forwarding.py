import logging
from typing import Dict, Optional

import requests

from makura.exceptions import ForwardingError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 30.0


class HttpForwardingClient:
    """
    Delivers translated messages to downstream HTTP endpoints.

    Args:
        connect_timeout: Seconds to wait for the connection.
        read_timeout: Seconds to wait for the response.
        session: Optional ``requests.Session`` to reuse connections.
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.session = session

    def forward(self, endpoint: str, message: str, api_key: Optional[str] = None) -> str:
        """
        POSTs ``message`` as ``application/xml`` to ``endpoint``.

        Returns:
            The response body.

        Raises:
            ForwardingError: On transport failure or a non-2xx status.
        """
        if not endpoint:
            raise ForwardingError("No forwarding endpoint given")

        headers: Dict[str, str] = {"Content-Type": "application/xml"}
        if api_key:
            headers["X-API-Key"] = api_key

        post = self.session.post if self.session is not None else requests.post
        try:
            response = post(
                endpoint,
                data=message.encode("utf-8"),
                headers=headers,
                timeout=(self.connect_timeout, self.read_timeout),
            )
        except requests.RequestException as e:
            raise ForwardingError(f"Failed to forward message to {endpoint}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise ForwardingError(
                f"Forwarding to {endpoint} failed with HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        logger.info("Forwarded message to %s (HTTP %d)", endpoint, response.status_code)
        return response.text
