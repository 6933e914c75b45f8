"""Gmail API transport: search, message, history and profile calls."""

from __future__ import annotations

import re
import threading
from typing import Any, Callable, Protocol

import httplib2
import structlog
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import DetectionConfig
from .constants import (
    HISTORY_TYPE_MESSAGE_ADDED,
    MESSAGE_FORMATS,
    METADATA_HEADERS,
    QUERY_CATEGORY_FILTER,
    QUERY_NEGATIVE_KEYWORDS,
    QUERY_POSITIVE_KEYWORDS,
    USER_ID,
)
from .exceptions import (
    GmailAPIError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from .models import HistoryPage, Message

logger = structlog.get_logger()

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")


class MailApi(Protocol):
    """The remote mail operations the fetch layer depends on."""

    def search_message_ids(
        self, query: str, page_size: int, page_token: str | None = None
    ) -> tuple[list[str], str | None]: ...

    def get_message(
        self, message_id: str, format: str = "metadata", metadata_headers: list[str] | None = None
    ) -> Message: ...

    def get_changes_since(
        self, cursor: str, label_id: str | None = None, page_token: str | None = None
    ) -> HistoryPage: ...

    def get_profile(self) -> str | None: ...


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def extract_sender_domain(sender: str) -> str:
    """Return the lowercased domain after the last ``@`` of the sender address."""
    _, email = parse_from_header(sender)
    email = email.lower()
    if "@" in email:
        return email.rsplit("@", 1)[1]
    return email


def parse_message(response: dict[str, Any]) -> Message:
    """Build a :class:`Message` from a users.messages.get response."""
    headers: dict[str, str] = {}
    for h in response.get("payload", {}).get("headers", []) or []:
        headers[h["name"].lower()] = h["value"]

    return Message(
        message_id=response["id"],
        thread_id=response.get("threadId", ""),
        snippet=response.get("snippet", ""),
        subject=headers.get("subject", "No Subject"),
        sender=headers.get("from", "Unknown"),
        internal_date=response.get("internalDate"),
        has_unsubscribe_header="list-unsubscribe" in headers,
    )


def build_search_query(config: DetectionConfig | None = None) -> str:
    """Gmail search query for likely billing mail within the recency window."""
    config = config or DetectionConfig()
    positive = " OR ".join(f'"{k}"' for k in QUERY_POSITIVE_KEYWORDS)
    negative = " ".join(f'-"{k}"' for k in QUERY_NEGATIVE_KEYWORDS)
    query = f"newer_than:{config.months_to_scan}m ({positive}) {negative}"
    if config.use_category_filter:
        query = f"{QUERY_CATEGORY_FILTER} {query}"
    return query


def translate_http_error(exc: HttpError) -> GmailAPIError:
    """Map an ``HttpError`` onto the scanner's error taxonomy."""
    status = exc.resp.status
    retry_after = exc.resp.get("retry-after")
    message = f"Gmail API returned {status}"
    if status == 429 or (status == 403 and b"ratelimitexceeded" in (exc.content or b"").lower()):
        return RateLimitedError(message, status=status, retry_after=retry_after)
    if status == 401:
        return UnauthorizedError(message, status=status)
    if status == 404:
        return NotFoundError(message, status=status)
    return ServerError(message, status=status, retry_after=retry_after)


class GmailApi:
    """Thin wrapper over the Gmail v1 discovery client.

    ``httplib2`` connections are not thread safe, so every thread gets its
    own service object.
    """

    def __init__(
        self,
        access_token: str,
        user_id: str = USER_ID,
        service_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._credentials = Credentials(token=access_token)
        self._user_id = user_id
        self._service_factory = service_factory or self._build_service
        self._local = threading.local()

    def _build_service(self) -> Any:
        return build("gmail", "v1", credentials=self._credentials, cache_discovery=False)

    @property
    def _service(self) -> Any:
        service = getattr(self._local, "service", None)
        if service is None:
            service = self._service_factory()
            self._local.service = service
        return service

    def _execute(self, request) -> dict[str, Any]:
        try:
            return request.execute()
        except HttpError as exc:
            logger.debug("gmail_http_error", status=exc.resp.status, uri=exc.uri)
            raise translate_http_error(exc) from exc
        except (httplib2.HttpLib2Error, OSError) as exc:
            raise TransportError(str(exc)) from exc

    def search_message_ids(
        self, query: str, page_size: int, page_token: str | None = None
    ) -> tuple[list[str], str | None]:
        kwargs: dict = {
            "userId": self._user_id,
            "q": query,
            "maxResults": page_size,
            "fields": "messages/id,nextPageToken",
        }
        if page_token:
            kwargs["pageToken"] = page_token
        resp = self._execute(self._service.users().messages().list(**kwargs))
        ids = [m["id"] for m in resp.get("messages", []) or []]
        return ids, resp.get("nextPageToken")

    def get_message(
        self, message_id: str, format: str = "metadata", metadata_headers: list[str] | None = None
    ) -> Message:
        if format not in MESSAGE_FORMATS:
            raise ValueError(f"Unsupported message format: {format!r}")
        kwargs: dict = {"userId": self._user_id, "id": message_id, "format": format}
        if format == "metadata":
            kwargs["metadataHeaders"] = metadata_headers or METADATA_HEADERS
        resp = self._execute(self._service.users().messages().get(**kwargs))
        return parse_message(resp)

    def get_changes_since(
        self, cursor: str, label_id: str | None = None, page_token: str | None = None
    ) -> HistoryPage:
        kwargs: dict = {
            "userId": self._user_id,
            "startHistoryId": cursor,
            "historyTypes": [HISTORY_TYPE_MESSAGE_ADDED],
        }
        if label_id:
            kwargs["labelId"] = label_id
        if page_token:
            kwargs["pageToken"] = page_token
        resp = self._execute(self._service.users().history().list(**kwargs))

        records = resp.get("history", []) or []
        added: list[str] = []
        for record in records:
            for item in record.get("messagesAdded", []) or []:
                added.append(item["message"]["id"])
        return HistoryPage(
            message_ids=added,
            next_page_token=resp.get("nextPageToken"),
            cursor=resp.get("historyId"),
            records=len(records),
        )

    def get_profile(self) -> str | None:
        resp = self._execute(self._service.users().getProfile(userId=self._user_id))
        return resp.get("historyId")
