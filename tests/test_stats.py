# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PageStats: default statistics collaborator.

Pure synchronous tests: events are fed directly to process_event().
"""

from __future__ import annotations

import pytest

from harlive.config import LoadOptions
from harlive.errors import CompletionError
from harlive.stats import PageStats


class Decision:
    def __init__(self):
        self.resolved = []
        self.rejected = []

    def resolve(self, value):
        self.resolved.append(value)

    def reject(self, error):
        self.rejected.append(error)


def _feed(stats, decision, method, **params):
    stats.process_event(decision.resolve, decision.reject, {"method": method, "params": params})


@pytest.fixture
def decision():
    return Decision()


def _document(stats, decision, rid="R1", url="https://example.com/"):
    _feed(
        stats,
        decision,
        "Network.requestWillBeSent",
        requestId=rid,
        request={"url": url, "method": "GET"},
        timestamp=1.0,
        wallTime=1700000000.0,
        type="Document",
    )


class TestTracking:
    def test_request_creates_entry(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        assert "R1" in stats.entries
        assert stats.first_request_id == "R1"
        assert stats.entries["R1"].request["method"] == "GET"

    def test_requests_before_document_ignored(self, decision):
        stats = PageStats("https://example.com/")
        _feed(stats, decision, "Network.requestWillBeSent", requestId="X", request={}, type="Script")
        assert stats.entries == {}

    def test_redirect_keeps_single_entry(self, decision):
        stats = PageStats("http://example.com/")
        _document(stats, decision, url="http://example.com/")
        _feed(
            stats,
            decision,
            "Network.requestWillBeSent",
            requestId="R1",
            request={"url": "https://example.com/"},
            redirectResponse={"status": 301},
            timestamp=1.2,
        )
        entry = stats.entries["R1"]
        assert len(stats.entries) == 1
        assert entry.request["url"] == "https://example.com/"
        assert entry.redirects[0]["response"] == {"status": 301}

    def test_data_received_accumulates(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Network.dataReceived", requestId="R1", dataLength=10, encodedDataLength=4)
        _feed(stats, decision, "Network.dataReceived", requestId="R1", dataLength=5, encodedDataLength=2)
        assert stats.entries["R1"].data_length == 15
        assert stats.entries["R1"].encoded_data_length == 6

    def test_served_from_cache(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Network.requestServedFromCache", requestId="R1")
        assert stats.entries["R1"].from_cache is True

    def test_unknown_events_counted_but_ignored(self, decision):
        stats = PageStats("https://example.com/")
        _feed(stats, decision, "Page.frameNavigated", frame={})
        assert stats.events == 1
        assert decision.resolved == []


class TestCompletion:
    def test_resolves_after_load_event_and_finished_entries(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Page.loadEventFired", timestamp=3.0)
        assert decision.resolved == []
        _feed(stats, decision, "Network.loadingFinished", requestId="R1", timestamp=2.0)
        assert decision.resolved == [stats]

    def test_pending_subresource_blocks_completion(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Network.requestWillBeSent", requestId="R2", request={}, timestamp=1.1, type="Image")
        _feed(stats, decision, "Network.loadingFinished", requestId="R1", timestamp=2.0)
        _feed(stats, decision, "Page.loadEventFired", timestamp=3.0)
        assert decision.resolved == []
        _feed(stats, decision, "Network.loadingFailed", requestId="R2", errorText="net::ERR_ABORTED")
        assert decision.resolved == [stats]

    def test_resolves_only_once(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Network.loadingFinished", requestId="R1", timestamp=2.0)
        _feed(stats, decision, "Page.loadEventFired", timestamp=3.0)
        _feed(stats, decision, "Page.loadEventFired", timestamp=4.0)
        assert len(decision.resolved) == 1

    def test_content_waits_for_body(self, decision):
        stats = PageStats("https://example.com/", LoadOptions(content=True))
        _document(stats, decision)
        _feed(stats, decision, "Network.loadingFinished", requestId="R1", timestamp=2.0)
        _feed(stats, decision, "Page.loadEventFired", timestamp=3.0)
        assert decision.resolved == []
        _feed(stats, decision, "Network.getResponseBody", requestId="R1", body="aGk=", base64Encoded=True)
        assert decision.resolved == [stats]
        assert stats.entries["R1"].body == "aGk="
        assert stats.entries["R1"].base64_encoded is True

    def test_main_document_failure_rejects(self, decision):
        stats = PageStats("https://nope.invalid/")
        _document(stats, decision, url="https://nope.invalid/")
        _feed(stats, decision, "Network.loadingFailed", requestId="R1", errorText="net::ERR_NAME_NOT_RESOLVED")
        assert decision.resolved == []
        assert len(decision.rejected) == 1
        assert isinstance(decision.rejected[0], CompletionError)
        assert "ERR_NAME_NOT_RESOLVED" in str(decision.rejected[0])


class TestExport:
    def test_to_dict(self, decision):
        stats = PageStats("https://example.com/")
        _document(stats, decision)
        _feed(stats, decision, "Network.responseReceived", requestId="R1", response={"status": 200}, timestamp=1.5)
        _feed(stats, decision, "Page.domContentEventFired", timestamp=2.5)
        stats.user = {"title": "Example"}
        data = stats.to_dict()
        assert data["url"] == "https://example.com/"
        assert data["domContentEventFired"] == 2.5
        assert data["entries"][0]["response"] == {"status": 200}
        assert data["entries"][0]["responseTimestamp"] == 1.5
        assert data["user"] == {"title": "Example"}
