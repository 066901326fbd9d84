"""HTTP client for the remote suggestion service."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..core.ranges import ContentRange
from ..editor.models import Suggestion
from .errors import BackendError, ErrorCode, is_retryable_error
from .settings import BackendSettings

__all__ = [
    "GetAuthToken",
    "HttpSuggestionBackend",
    "ReviewMessage",
    "ReviewSuggestionRequester",
    "StartReviewResponse",
    "SuggestionBackend",
    "SuggestionsPage",
    "delete_suggestion_quietly",
]

LOGGER = logging.getLogger(__name__)

GetAuthToken = Callable[[], Awaitable[str]]
MessageHandler = Callable[["ReviewMessage"], None]
ErrorHandler = Callable[[BaseException], None]

_MAX_POLL_FAILURES = 5
_DEFAULT_REVIEW_TTL = 10 * 60


@dataclass(slots=True, frozen=True)
class SuggestionsPage:
    suggestions: tuple[Suggestion, ...] = ()
    summary: str | None = None


@dataclass(slots=True, frozen=True)
class StartReviewResponse:
    """Handle returned when an asynchronous review is started.

    ``token`` and ``endpoint`` are what :meth:`SuggestionBackend.subscribe_to_updates`
    needs to wait for the review outcome. ``expires_at`` is in epoch seconds.
    """

    review_id: str
    token: str
    endpoint: str
    expires_at: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], post_id: str) -> StartReviewResponse:
        token = payload.get("token")
        endpoint = payload.get("endpoint")
        if not isinstance(token, str) or not token.strip():
            raise ValueError("Review response is missing a token")
        if not isinstance(endpoint, str) or not endpoint.strip().startswith(("http://", "https://")):
            raise ValueError("Review response is missing a valid endpoint URL")
        expires_at = payload.get("expiresAt")
        now = int(time.time())
        if not isinstance(expires_at, (int, float)) or expires_at <= now:
            expires_at = now + _DEFAULT_REVIEW_TTL
        return cls(
            review_id=str(payload.get("reviewId") or post_id),
            token=token.strip(),
            endpoint=endpoint.strip(),
            expires_at=int(expires_at),
        )


@dataclass(slots=True, frozen=True)
class ReviewMessage:
    """Outcome notification for an asynchronous review."""

    type: str
    review_id: str = ""
    content_id: str = ""
    success: bool = True
    error: str | None = None
    retryable: bool = False
    completed_at: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.type == "review_error" or not self.success

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ReviewMessage:
        message_type = payload.get("type")
        if message_type not in ("review_complete", "review_error"):
            raise ValueError(f"Unknown review message type: {message_type!r}")
        known = {"type", "reviewId", "contentId", "success", "error", "retryable", "completedAt"}
        return cls(
            type=message_type,
            review_id=str(payload.get("reviewId") or ""),
            content_id=str(payload.get("contentId") or ""),
            success=bool(payload.get("success", message_type == "review_complete")),
            error=payload.get("error"),
            retryable=bool(payload.get("retryable", False)),
            completed_at=payload.get("completedAt"),
            extra={key: value for key, value in payload.items() if key not in known},
        )


class SuggestionBackend(Protocol):
    """Remote operations the editor core depends on."""

    async def fetch_suggestions(self, post_id: str) -> SuggestionsPage:
        ...

    async def delete_suggestion(self, suggestion_id: str) -> None:
        ...

    async def start_review(self, post_id: str) -> StartReviewResponse:
        ...

    def subscribe_to_updates(
        self,
        token: str,
        endpoint: str,
        on_message: MessageHandler,
        on_error: ErrorHandler,
    ) -> Callable[[], None]:
        ...


class HttpSuggestionBackend:
    """Async client for the suggestion service with retry semantics."""

    def __init__(
        self,
        settings: BackendSettings,
        get_auth_token: GetAuthToken,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._get_auth_token = get_auth_token
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            timeout=settings.request_timeout,
            headers=dict(settings.default_headers),
            transport=transport,
        )

    @property
    def settings(self) -> BackendSettings:
        return self._settings

    @property
    def api_base(self) -> str:
        """Base URL with an ``/api`` suffix and no trailing slash."""

        base = (self._settings.base_url or "").rstrip("/")
        return base if base.endswith("/api") else f"{base}/api"

    async def fetch_suggestions(self, post_id: str) -> SuggestionsPage:
        _require_id(post_id, "Post ID")
        payload = await self._request("GET", f"/posts/{quote(post_id, safe='')}/suggestions")
        if not isinstance(payload, Mapping):
            payload = {"suggestions": payload or []}
        suggestions = []
        for record in payload.get("suggestions") or []:
            try:
                suggestions.append(Suggestion.from_payload(record))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed suggestion for post %s: %s", post_id, exc)
        return SuggestionsPage(suggestions=tuple(suggestions), summary=payload.get("summary"))

    async def delete_suggestion(self, suggestion_id: str) -> None:
        _require_id(suggestion_id, "Suggestion ID")
        await self._request("DELETE", f"/suggestions/{quote(suggestion_id, safe='')}")

    async def start_review(self, post_id: str) -> StartReviewResponse:
        _require_id(post_id, "Post ID")
        payload = await self._request("POST", f"/posts/{quote(post_id, safe='')}/reviews")
        if not isinstance(payload, Mapping):
            raise BackendError(
                code=ErrorCode.PARSE_ERROR,
                message="Review service returned an invalid response format",
            )
        try:
            return StartReviewResponse.from_payload(payload, post_id)
        except ValueError as exc:
            raise BackendError(code=ErrorCode.PARSE_ERROR, message=str(exc)) from exc

    def subscribe_to_updates(
        self,
        token: str,
        endpoint: str,
        on_message: MessageHandler,
        on_error: ErrorHandler,
    ) -> Callable[[], None]:
        """Poll ``endpoint`` until a review message arrives.

        Returns a handle that stops polling. Must be called from a running
        event loop.
        """

        task = asyncio.get_running_loop().create_task(
            self._poll(token, endpoint, on_message, on_error)
        )

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str) -> Any:
        async for attempt in self._retrying():
            with attempt:
                headers = await self._auth_headers()
                try:
                    response = await self._client.request(method, path, headers=headers)
                except httpx.TimeoutException as exc:
                    raise BackendError(
                        code=ErrorCode.TIMEOUT,
                        message=f"{method} {path} timed out",
                        retryable=True,
                    ) from exc
                except httpx.TransportError as exc:
                    raise BackendError(
                        code=ErrorCode.NETWORK_ERROR,
                        message=f"{method} {path} failed: {exc}",
                        retryable=True,
                    ) from exc
                return _decode_response(response)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._get_auth_token()
        if not token:
            raise BackendError(code=ErrorCode.AUTH_ERROR, message="Authentication token not available")
        return {"Authorization": f"Bearer {token}"}

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(is_retryable_error),
        )

    async def _poll(
        self,
        token: str,
        endpoint: str,
        on_message: MessageHandler,
        on_error: ErrorHandler,
    ) -> None:
        interval = max(0.0, self._settings.polling_interval)
        failures = 0
        while True:
            delay = interval
            try:
                response = await self._client.get(endpoint, headers={"Authorization": token})
                if response.status_code >= 400:
                    raise BackendError.from_status(response.status_code)
                message = _extract_review_message(response)
            except asyncio.CancelledError:
                raise
            except (BackendError, httpx.TransportError, ValueError) as exc:
                if isinstance(exc, BackendError) and not exc.retryable:
                    LOGGER.debug("Review polling stopped: %s", exc)
                    on_error(exc)
                    return
                failures += 1
                LOGGER.debug("Review poll failed (%d/%d): %s", failures, _MAX_POLL_FAILURES, exc)
                if failures >= _MAX_POLL_FAILURES:
                    on_error(
                        BackendError(
                            code=ErrorCode.NETWORK_ERROR,
                            message="Review polling failed after multiple attempts",
                            retryable=True,
                        )
                    )
                    return
                delay = interval * 1.5**failures
            else:
                if message is not None:
                    on_message(message)
                    return
                failures = 0
            await asyncio.sleep(delay)


class ReviewSuggestionRequester:
    """Fetches suggestions for new text by running a full asynchronous review."""

    def __init__(self, backend: SuggestionBackend, *, timeout: float = 120.0) -> None:
        self._backend = backend
        self._timeout = timeout

    async def request_suggestions(
        self,
        post_id: str,
        changed_text: str,
        changed_ranges: Sequence[ContentRange],
    ) -> list[Suggestion]:
        LOGGER.debug(
            "Requesting review for post %s (%d changed chars in %d ranges)",
            post_id,
            len(changed_text),
            len(changed_ranges),
        )
        review = await self._backend.start_review(post_id)
        future: asyncio.Future[ReviewMessage] = asyncio.get_running_loop().create_future()

        def on_message(message: ReviewMessage) -> None:
            if not future.done():
                future.set_result(message)

        def on_error(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        unsubscribe = self._backend.subscribe_to_updates(review.token, review.endpoint, on_message, on_error)
        try:
            message = await asyncio.wait_for(future, self._timeout)
        finally:
            unsubscribe()

        if message.is_error:
            raise BackendError(
                code=ErrorCode.SERVER_ERROR,
                message=message.error or "Review completed with errors",
                retryable=message.retryable,
            )
        page = await self._backend.fetch_suggestions(post_id)
        return list(page.suggestions)


async def delete_suggestion_quietly(backend: SuggestionBackend, suggestion_id: str) -> bool:
    """Delete a suggestion, logging instead of raising on failure."""

    try:
        await backend.delete_suggestion(suggestion_id)
    except Exception as exc:
        LOGGER.warning("Failed to delete suggestion %s: %s", suggestion_id, exc)
        return False
    return True


def _require_id(value: str, label: str) -> None:
    if not value or not isinstance(value, str):
        raise BackendError(code=ErrorCode.INVALID_INPUT, message=f"{label} is required")


def _decode_response(response: httpx.Response) -> Any:
    if response.status_code >= 400:
        raise BackendError.from_status(response.status_code, _error_message(response))
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise BackendError(
            code=ErrorCode.PARSE_ERROR,
            message="Suggestion service returned invalid JSON",
        ) from exc


def _error_message(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(payload, Mapping):
        message = payload.get("message") or payload.get("error")
        return str(message) if message else None
    return None


def _extract_review_message(response: httpx.Response) -> ReviewMessage | None:
    """Return the newest message in a poll response, or ``None`` when empty.

    Raises:
        ValueError: The response or the message it carries is malformed.
    """
    data = response.json()
    items = data.get("items") if isinstance(data, Mapping) else None
    if not items:
        return None
    latest = items[0]
    value = latest.get("value") if isinstance(latest, Mapping) else None
    if not value:
        raise ValueError("Received empty message from polling endpoint")
    payload = json.loads(value) if isinstance(value, str) else value
    if not isinstance(payload, Mapping):
        raise ValueError("Review message is not an object")
    return ReviewMessage.from_payload(payload)
