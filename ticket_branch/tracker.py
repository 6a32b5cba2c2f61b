"""
Issue tracker client for ticket-branch.

Retrieves a single ticket from the tracker JSON API
(``GET <url>/issues/<id>.json``) and turns it into a Ticket.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .config import NamingConfig, TrackerConfig
from .models import IssueEnvelope, Ticket


logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base exception for ticket retrieval errors."""

    kind = "FetchError"


class TrackerAPIError(FetchError):
    """Error when communicating with the tracker API."""

    kind = "TrackerAPIError"


class TicketParseError(FetchError):
    """The tracker answered with data that is not a ticket."""

    kind = "TicketParseError"


class TrackerClient:
    """
    Client for the issue tracker API.

    Authenticates every request with the configured API key header.
    """

    def __init__(self, config: TrackerConfig):
        """
        Initialize the tracker client.

        Args:
            config: Tracker configuration with URL and credentials.
        """
        self._config = config
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> "TrackerClient":
        """Context manager entry."""
        self._client = httpx.Client(
            timeout=self._config.request_timeout,
            verify=self._config.verify_ssl,
            headers={
                self._config.api_key_header: self._config.api_key,
                "Accept": "application/json",
            },
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    def fetch_issue(self, ticket_id: int) -> IssueEnvelope:
        """
        Fetch the raw issue document of a ticket.

        Args:
            ticket_id: Ticket number.

        Returns:
            Parsed IssueEnvelope.

        Raises:
            TrackerAPIError: If the request fails.
            TicketParseError: If the response is not a valid issue.
        """
        if not self._client:
            raise RuntimeError("Client must be used within a context manager")

        url = self._config.issue_url(ticket_id)
        logger.info(f"Requesting {url}")

        try:
            response = self._client.get(url)
            if response.status_code in (401, 403):
                raise TrackerAPIError(
                    f"Authentication failed ({response.status_code}): "
                    f"check TRACKER_API_KEY or --token"
                )
            if response.status_code == 404:
                raise TrackerAPIError(f"Ticket #{ticket_id} not found")
            response.raise_for_status()

            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching ticket #{ticket_id}: {e}")
            raise TrackerAPIError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error fetching ticket #{ticket_id}: {e}")
            raise TrackerAPIError(f"Request failed: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON for ticket #{ticket_id}: {e}")
            raise TicketParseError(f"Unable to decode JSON: {str(e)}") from e

        try:
            envelope = IssueEnvelope.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Rejected payload: {data!r}")
            raise TicketParseError(f"Unexpected ticket format: {e}") from e

        if envelope.issue.id != ticket_id:
            raise TicketParseError(
                f"Requested ticket #{ticket_id} but received #{envelope.issue.id}"
            )
        return envelope

    def fetch_ticket(self, ticket_id: int, naming: NamingConfig) -> Ticket:
        """
        Fetch a ticket and build the model used for resolution.

        Args:
            ticket_id: Ticket number.
            naming: Naming configuration (maintenance label template).

        Returns:
            Ticket instance.
        """
        envelope = self.fetch_issue(ticket_id)
        ticket = Ticket.from_issue(envelope.issue, naming.maintenance_template)
        logger.info(
            f"Ticket #{ticket.id}: target={ticket.target_label or '-'} "
            f"parent={ticket.parent_id or '-'}"
        )
        return ticket


def fetch_ticket(
    ticket_id: int,
    config: TrackerConfig,
    naming: NamingConfig,
    with_parent: bool = False,
) -> Ticket:
    """
    Convenience function to fetch a ticket.

    Args:
        ticket_id: Ticket number.
        config: Tracker configuration.
        naming: Naming configuration.
        with_parent: Also fetch the parent ticket to record its
            maintenance label.

    Returns:
        Ticket instance.

    Raises:
        FetchError: If a fetch operation fails.
    """
    with TrackerClient(config) as client:
        ticket = client.fetch_ticket(ticket_id, naming)
        if with_parent and ticket.parent_id is not None:
            parent = client.fetch_ticket(ticket.parent_id, naming)
            ticket = ticket.with_parent_label(parent.target_label)
    return ticket
