# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Default statistics collaborator: raw per-request records for one load.

Tracks the Network/Page events of a single navigation and decides when the
page load is finished. Timing math (HAR phases) is left to consumers of
``to_dict()``; this module only collects and correlates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .config import LoadOptions
from .errors import CompletionError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Entry:
    """Raw protocol data for one network request."""

    request_id: str
    request: dict
    timestamp: float
    wall_time: float | None = None
    initiator: dict | None = None
    resource_type: str = ""
    redirects: list[dict] = field(default_factory=list)
    response: dict | None = None
    response_timestamp: float | None = None
    data_length: int = 0
    encoded_data_length: int = 0
    from_cache: bool = False
    finished_timestamp: float | None = None
    failed: str | None = None
    body: str | None = None
    base64_encoded: bool = False
    body_fetched: bool = False

    @property
    def finished(self) -> bool:
        return self.finished_timestamp is not None or self.failed is not None

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "request": self.request,
            "timestamp": self.timestamp,
            "wallTime": self.wall_time,
            "initiator": self.initiator,
            "type": self.resource_type,
            "redirects": self.redirects,
            "response": self.response,
            "responseTimestamp": self.response_timestamp,
            "dataLength": self.data_length,
            "encodedDataLength": self.encoded_data_length,
            "fromCache": self.from_cache,
            "finishedTimestamp": self.finished_timestamp,
            "failed": self.failed,
            "body": self.body,
            "base64Encoded": self.base64_encoded,
        }


class PageStats:
    """Collects events of one page load and signals its completion.

    Completion criteria: ``Page.loadEventFired`` was received and every
    tracked request is finished (and, with ``content`` on, its body was
    fetched). A failure of the main document request rejects the load.
    """

    def __init__(self, url: str, options: LoadOptions | None = None) -> None:
        self.url = url
        self.options = options or LoadOptions()
        self.entries: dict[str, Entry] = {}
        self.user: Any = None
        self.first_request_id: str | None = None
        self.dom_content_event_fired: float | None = None
        self.load_event_fired: float | None = None
        self.events: int = 0
        self._settled = False

    def process_event(
        self,
        resolve: Callable[[Any], None],
        reject: Callable[[BaseException], None],
        event: dict,
    ) -> None:
        self.events += 1
        method = event.get("method", "")
        params = event.get("params") or {}
        handler = _HANDLERS.get(method)
        if handler is None:
            return
        handler(self, params)
        if self._settled:
            return
        failure = self._main_request_failure()
        if failure is not None:
            self._settled = True
            reject(CompletionError(f"Navigation failed: {failure}"))
        elif self._is_finished():
            self._settled = True
            logger.debug("Page load finished: url=%s entries=%d", self.url, len(self.entries))
            resolve(self)

    # ── decision ─────────────────────────────────────────────────────

    def _main_request_failure(self) -> str | None:
        if self.first_request_id is None:
            return None
        entry = self.entries.get(self.first_request_id)
        return entry.failed if entry is not None else None

    def _is_finished(self) -> bool:
        if self.load_event_fired is None:
            return False
        for entry in self.entries.values():
            if not entry.finished:
                return False
            if self.options.content and entry.failed is None and not entry.body_fetched:
                return False
        return True

    # ── event handlers ───────────────────────────────────────────────

    def _on_request_will_be_sent(self, params: dict) -> None:
        request_id = params.get("requestId")
        if not request_id:
            return
        # only track requests that belong to the page being loaded
        if self.first_request_id is None:
            if params.get("type") not in (None, "Document"):
                return
            self.first_request_id = request_id
        entry = self.entries.get(request_id)
        if entry is not None:
            # same requestId again: redirect
            redirect = params.get("redirectResponse")
            entry.redirects.append({"request": entry.request, "response": redirect})
            entry.request = params.get("request", {})
            entry.timestamp = params.get("timestamp", entry.timestamp)
            return
        self.entries[request_id] = Entry(
            request_id=request_id,
            request=params.get("request", {}),
            timestamp=params.get("timestamp", 0.0),
            wall_time=params.get("wallTime"),
            initiator=params.get("initiator"),
            resource_type=params.get("type", ""),
        )

    def _on_request_served_from_cache(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is not None:
            entry.from_cache = True

    def _on_response_received(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is None:
            return
        entry.response = params.get("response")
        entry.response_timestamp = params.get("timestamp")
        if entry.response and entry.response.get("fromDiskCache"):
            entry.from_cache = True

    def _on_data_received(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is None:
            return
        entry.data_length += params.get("dataLength", 0)
        entry.encoded_data_length += params.get("encodedDataLength", 0)

    def _on_loading_finished(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is None:
            return
        entry.finished_timestamp = params.get("timestamp", 0.0)
        encoded = params.get("encodedDataLength")
        if encoded is not None:
            entry.encoded_data_length = encoded

    def _on_loading_failed(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is None:
            return
        entry.failed = params.get("errorText") or "failed"
        if params.get("canceled"):
            entry.failed = "canceled"

    def _on_get_response_body(self, params: dict) -> None:
        entry = self.entries.get(params.get("requestId", ""))
        if entry is None:
            return
        entry.body = params.get("body")
        entry.base64_encoded = bool(params.get("base64Encoded"))
        entry.body_fetched = True

    def _on_dom_content_event_fired(self, params: dict) -> None:
        self.dom_content_event_fired = params.get("timestamp", 0.0)

    def _on_load_event_fired(self, params: dict) -> None:
        self.load_event_fired = params.get("timestamp", 0.0)

    # ── export ───────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "domContentEventFired": self.dom_content_event_fired,
            "loadEventFired": self.load_event_fired,
            "entries": [e.to_dict() for e in self.entries.values()],
            "user": self.user,
        }


_HANDLERS: dict[str, Callable[[PageStats, dict], None]] = {
    "Network.requestWillBeSent": PageStats._on_request_will_be_sent,
    "Network.requestServedFromCache": PageStats._on_request_served_from_cache,
    "Network.responseReceived": PageStats._on_response_received,
    "Network.dataReceived": PageStats._on_data_received,
    "Network.loadingFinished": PageStats._on_loading_finished,
    "Network.loadingFailed": PageStats._on_loading_failed,
    "Network.getResponseBody": PageStats._on_get_response_body,
    "Page.domContentEventFired": PageStats._on_dom_content_event_fired,
    "Page.loadEventFired": PageStats._on_load_event_fired,
}
