# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Microsoft Graph mailbox adapter.

Exposes the four operations the batch run needs (list, reply, find-or-create
folder, move) and converts Graph message JSON into ``InboundEmail`` so no
provider field leaks past this module.

The bearer token is requested from the supplier before every request, so an
access token that expires mid-run is refreshed transparently.

Transient failures are retried with exponential backoff.  Requests that can
have side effects (reply, move, folder creation) are only retried when the
server cannot have acted on them: connection failures and throttling
responses (429/503).
"""

import logging
import time
from collections.abc import Callable, Iterator
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from quotemail.config import MailboxConfig
from quotemail.html_to_text import html_to_text
from quotemail.models import InboundEmail


logger = logging.getLogger(__name__)

_MESSAGE_FIELDS = "id,subject,body,from,sender"

# Statuses that mean "not processed, try again later".
_THROTTLE_STATUSES = frozenset({429, 503})
_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

_BASE_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 60.0


class MailboxError(Exception):
    """Raised when a mailbox operation fails."""


def _graph_error(response: httpx.Response) -> str:
    """Extract Graph's error code and message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return response.text[:200] or response.reason_phrase
    code = error.get("code", "unknown")
    message = error.get("message", "")
    return f"{code}: {message}" if message else code


def _json(response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response body.

    Raises:
        MailboxError: If the body is not a JSON object.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise MailboxError(
            f"Invalid JSON from {response.request.url}: {e}"
        ) from e
    if not isinstance(data, dict):
        raise MailboxError(f"Unexpected response from {response.request.url}")
    return data


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return min(max(seconds, 0.0), _MAX_BACKOFF_SECONDS)


def parse_message(message: dict[str, Any]) -> InboundEmail:
    """Convert a Graph message resource into an InboundEmail.

    HTML bodies are converted to text with quoted replies removed.

    Args:
        message: Graph ``message`` JSON.

    Returns:
        InboundEmail snapshot.
    """
    body = message.get("body") or {}
    content = body.get("content") or ""
    if (body.get("contentType") or "").lower() == "html":
        content = html_to_text(content, strip_quotes=True)

    sender = message.get("from") or message.get("sender") or {}
    address = (sender.get("emailAddress") or {}).get("address") or ""

    return InboundEmail(
        id=message["id"],
        subject=message.get("subject") or "",
        body_text=content,
        sender_address=address,
    )


class GraphMailbox:
    """Mailbox operations over the Microsoft Graph REST API.

    Attributes:
        config: Mailbox configuration.
    """

    def __init__(
        self,
        config: MailboxConfig,
        token_supplier: Callable[[], str],
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the mailbox.

        Args:
            config: Mailbox configuration.
            token_supplier: Returns a valid bearer token; called before every
                request.
            client: HTTP client to use.  Created from ``config`` if omitted.
            sleep: Delay function used between retries.
        """
        self.config = config
        self._token_supplier = token_supplier
        self._client = client or httpx.Client(
            base_url=config.graph_base_url,
            timeout=config.http_timeout_seconds,
        )
        self._sleep = sleep
        self._folder_ids: dict[str, str] = {}

    def __enter__(self) -> "GraphMailbox":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _request(
        self,
        method: str,
        url: str,
        *,
        idempotent: bool,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request with retry and backoff.

        Args:
            method: HTTP method.
            url: Path relative to the Graph base URL, or an absolute URL.
            idempotent: Whether the request may be repeated after an
                ambiguous failure.
            params: Query parameters.
            json: JSON body.

        Returns:
            The successful response.

        Raises:
            MailboxError: On a non-retryable error or when retries run out.
        """
        retry_statuses = _RETRY_STATUSES if idempotent else _THROTTLE_STATUSES
        max_attempts = self.config.max_retries
        last_error = ""

        for attempt in range(1, max_attempts + 1):
            delay = min(
                _BASE_BACKOFF_SECONDS * 2 ** (attempt - 1),
                _MAX_BACKOFF_SECONDS,
            )
            headers = {"Authorization": f"Bearer {self._token_supplier()}"}
            try:
                response = self._client.request(
                    method, url, params=params, json=json, headers=headers
                )
            except httpx.TransportError as e:
                ambiguous = not isinstance(
                    e, (httpx.ConnectError, httpx.ConnectTimeout)
                )
                if ambiguous and not idempotent:
                    raise MailboxError(f"{method} {url} failed: {e}") from e
                last_error = str(e) or type(e).__name__
            else:
                if response.status_code in retry_statuses:
                    last_error = (
                        f"HTTP {response.status_code}: {_graph_error(response)}"
                    )
                    retry_after = _retry_after(response)
                    if retry_after is not None:
                        delay = retry_after
                elif response.is_error:
                    raise MailboxError(
                        f"{method} {url} failed: HTTP "
                        f"{response.status_code}: {_graph_error(response)}"
                    )
                else:
                    return response

            if attempt < max_attempts:
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    method,
                    url,
                    attempt,
                    max_attempts,
                    last_error,
                    delay,
                )
                self._sleep(delay)

        raise MailboxError(
            f"{method} {url} failed after {max_attempts} attempts: "
            f"{last_error}"
        )

    def list_messages(self, folder: str) -> Iterator[InboundEmail]:
        """Yield every message in a folder, following pagination.

        Args:
            folder: Well-known folder name (e.g. ``Inbox``) or folder ID.

        Yields:
            InboundEmail for each message.

        Raises:
            MailboxError: If a page cannot be fetched.
        """
        url: str | None = f"/me/mailFolders/{quote(folder, safe='')}/messages"
        params: dict[str, Any] | None = {
            "$select": _MESSAGE_FIELDS,
            "$top": self.config.page_size,
        }
        page = 0
        while url:
            page += 1
            data = _json(
                self._request("GET", url, idempotent=True, params=params)
            )
            messages = data.get("value", [])
            logger.debug("Fetched page %d (%d messages)", page, len(messages))
            for message in messages:
                yield parse_message(message)
            url = data.get("@odata.nextLink")
            params = None  # nextLink includes the query

    def send_reply(self, message_id: str, subject: str, body: str) -> None:
        """Reply to a message with a plain-text body.

        Raises:
            MailboxError: If the reply is not accepted.
        """
        self._request(
            "POST",
            f"/me/messages/{quote(message_id, safe='')}/reply",
            idempotent=False,
            json={
                "message": {
                    "subject": subject,
                    "body": {"contentType": "Text", "content": body},
                }
            },
        )
        logger.debug("Reply sent for message %s", message_id)

    def find_or_create_folder(self, display_name: str) -> str:
        """Return the ID of a top-level mail folder, creating it if absent.

        The ID is remembered for the lifetime of this mailbox, so the folder
        is looked up at most once.

        Raises:
            MailboxError: If the lookup or creation fails.
        """
        if display_name in self._folder_ids:
            return self._folder_ids[display_name]

        escaped = display_name.replace("'", "''")
        data = _json(
            self._request(
                "GET",
                "/me/mailFolders",
                idempotent=True,
                params={"$filter": f"displayName eq '{escaped}'"},
            )
        )
        folders = data.get("value", [])
        if folders:
            folder_id = folders[0].get("id")
        else:
            logger.info("Creating mail folder %r", display_name)
            created = _json(
                self._request(
                    "POST",
                    "/me/mailFolders",
                    idempotent=False,
                    json={"displayName": display_name},
                )
            )
            folder_id = created.get("id")

        if not folder_id:
            raise MailboxError(f"No ID returned for folder {display_name!r}")
        self._folder_ids[display_name] = folder_id
        return folder_id

    def move_message(self, message_id: str, folder_id: str) -> str:
        """Move a message to another folder.

        Returns:
            The message's ID in the destination folder.

        Raises:
            MailboxError: If the move fails.
        """
        moved = _json(
            self._request(
                "POST",
                f"/me/messages/{quote(message_id, safe='')}/move",
                idempotent=False,
                json={"destinationId": folder_id},
            )
        )
        return moved.get("id", message_id)
