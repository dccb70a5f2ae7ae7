"""
Tests for aftersales/client.py
==============================
Every request goes through httpx.MockTransport; nothing touches the network.

Covers:
  - fetch_info: success, failure envelope, 404, 503 HTML page, non-JSON,
    invalid JSON, malformed record, timeout, connection error
  - request shape: URL, bearer token, User-Agent
  - set_active: payload, idempotent end state, upstream refusal, HTTP errors
"""
import json

import httpx
import pytest

from aftersales.client import USER_AGENT, AccessCodeClient, StatusUpdate
from aftersales.errors import ErrorKind, Failure
from aftersales.models import AccessCodeInfo
from conftest import API_BASE, access_code_record, json_response


def _client(settings, mock_http, handler) -> AccessCodeClient:
    return AccessCodeClient(settings, http=mock_http(handler))


class TestFetchInfoSuccess:
    async def test_returns_access_code_info(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": True, "data": access_code_record("ABC123", 10)}
        ))
        info = await client.fetch_info("ABC123")

        assert isinstance(info, AccessCodeInfo)
        assert info.code == "ABC123"
        assert info.uses_remaining == 10
        assert info.is_active is True
        assert info.processing_mode == "standard"
        assert info.initial_uses is None

    async def test_reads_initial_uses_when_present(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": True, "data": access_code_record(uses_remaining=10, initialUses=20)}
        ))
        info = await client.fetch_info("ABC12345")
        assert info.initial_uses == 20

    async def test_unknown_processing_mode_passes_through(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": True, "data": access_code_record(processingMode="turbo")}
        ))
        info = await client.fetch_info("ABC12345")
        assert info.processing_mode == "turbo"

    async def test_request_shape(self, settings, mock_http):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return json_response({"success": True, "data": access_code_record()})

        await _client(settings, mock_http, handler).fetch_info("ABC12345")

        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == f"{API_BASE}/access-codes/ABC12345"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["User-Agent"] == USER_AGENT

    async def test_code_is_url_encoded(self, settings, mock_http):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return json_response({"success": False})

        await _client(settings, mock_http, handler).fetch_info("AB/../CD")
        assert seen[0].url.raw_path.endswith(b"/access-codes/AB%2F..%2FCD")


class TestFetchInfoFailures:
    async def test_failure_envelope_is_not_found(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": False, "message": "not found"}
        ))
        result = await client.fetch_info("NOPE1234")
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.NOT_FOUND

    async def test_success_without_data_is_not_found(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response({"success": True}))
        result = await client.fetch_info("NOPE1234")
        assert result.kind is ErrorKind.NOT_FOUND

    async def test_http_404_is_not_found(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response({"error": "x"}, 404))
        result = await client.fetch_info("NOPE1234")
        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 404

    async def test_503_html_page_is_transient(self, settings, mock_http):
        html = "<html><body><h1>503 Service Unavailable</h1></body></html>"
        client = _client(settings, mock_http, lambda r: httpx.Response(
            503, text=html, headers={"content-type": "text/html; charset=utf-8"}
        ))
        result = await client.fetch_info("ABC123")

        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.TRANSIENT
        assert result.retriable is True
        assert "<html>" not in result.message

    async def test_200_html_page_is_transient(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: httpx.Response(
            200, text="<html>login</html>", headers={"content-type": "text/html"}
        ))
        result = await client.fetch_info("ABC123")
        assert result.kind is ErrorKind.TRANSIENT

    async def test_invalid_json_is_transient(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: httpx.Response(
            200, content=b"{not json", headers={"content-type": "application/json"}
        ))
        result = await client.fetch_info("ABC123")
        assert result.kind is ErrorKind.TRANSIENT

    async def test_non_object_json_is_transient(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response([1, 2, 3]))
        result = await client.fetch_info("ABC123")
        assert result.kind is ErrorKind.TRANSIENT

    @pytest.mark.parametrize("record", [
        {"code": "ABC123"},
        {"code": "ABC123", "usesRemaining": "lots", "isActive": True, "processingMode": "standard"},
        {"code": "ABC123", "usesRemaining": -1, "isActive": True, "processingMode": "standard"},
    ])
    async def test_malformed_record_is_transient(self, settings, mock_http, record):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": True, "data": record}
        ))
        result = await client.fetch_info("ABC123")
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.TRANSIENT

    async def test_timeout_is_transient(self, settings, mock_http):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _client(settings, mock_http, handler).fetch_info("ABC123")
        assert result.kind is ErrorKind.TRANSIENT

    async def test_connection_error_is_transient(self, settings, mock_http):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await _client(settings, mock_http, handler).fetch_info("ABC123")
        assert result.kind is ErrorKind.TRANSIENT


class TestSetActive:
    async def test_sends_patch_with_flag_and_reason(self, settings, mock_http):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return json_response({"success": True})

        result = await _client(settings, mock_http, handler).set_active(
            "ABC123", False, "user_refund_request"
        )

        assert result == StatusUpdate(code="ABC123", is_active=False, reason="user_refund_request")
        assert seen[0].method == "PATCH"
        assert json.loads(seen[0].content) == {"isActive": False, "reason": "user_refund_request"}

    async def test_reason_omitted_when_none(self, settings, mock_http):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return json_response({"success": True})

        await _client(settings, mock_http, handler).set_active("ABC123", True)
        assert json.loads(seen[0].content) == {"isActive": True}

    async def test_repeated_deactivation_reports_same_end_state(self, settings, mock_http):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({"success": True, "data": {"isActive": False}})

        client = _client(settings, mock_http, handler)
        first  = await client.set_active("ABC123", False)
        second = await client.set_active("ABC123", False)

        assert first == second
        assert second.is_active is False
        assert len(calls) == 2      # one request per call, no retries

    async def test_upstream_refusal_is_policy_error(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: json_response(
            {"success": False, "message": "already inactive"}
        ))
        result = await client.set_active("ABC123", False)
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.POLICY

    async def test_server_error_is_transient(self, settings, mock_http):
        client = _client(settings, mock_http, lambda r: httpx.Response(
            502, text="<html>Bad Gateway</html>", headers={"content-type": "text/html"}
        ))
        result = await client.set_active("ABC123", False)
        assert result.kind is ErrorKind.TRANSIENT

    async def test_timeout_is_transient(self, settings, mock_http):
        def handler(request):
            raise httpx.WriteTimeout("timed out", request=request)

        result = await _client(settings, mock_http, handler).set_active("ABC123", False)
        assert result.kind is ErrorKind.TRANSIENT


class TestLifecycle:
    async def test_injected_http_client_is_not_closed(self, settings, mock_http):
        http = mock_http(lambda r: json_response({"success": True}))
        async with AccessCodeClient(settings, http=http):
            pass
        assert http.is_closed is False

    async def test_owned_http_client_is_closed(self, settings):
        client = AccessCodeClient(settings)
        await client.aclose()
        assert client._http.is_closed is True
