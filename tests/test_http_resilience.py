import httpx
import pytest

from flatwatch.adapters.clients.http_resilience import CircuitOpenError, ResilientHttp


@pytest.mark.asyncio
async def test_non_retryable_status_raises_after_one_attempt(settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(404, json={"error": "nope"})

    http = ResilientHttp(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(httpx.HTTPStatusError) as exc:
        await http.request("GET", "https://api.test/v2/filter")

    assert exc.value.response.status_code == 404
    assert calls == ["/v2/filter"]


@pytest.mark.asyncio
async def test_exhausted_timeouts_reraise_the_last_error(settings):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectTimeout("slow", request=request)

    http = ResilientHttp(settings.model_copy(update={"HTTP_MAX_RETRIES": -3}), transport=httpx.MockTransport(handler))
    with pytest.raises(httpx.ConnectTimeout):
        await http.request("GET", "https://api.test/v2/filter")

    # negative retry counts still make exactly one attempt
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    s = settings.model_copy(update={"HTTP_MAX_RETRIES": 0, "HTTP_CIRCUIT_FAIL_THRESHOLD": 2})
    http = ResilientHttp(s, transport=httpx.MockTransport(handler))

    for _ in range(2):
        with pytest.raises(httpx.HTTPStatusError):
            await http.request("GET", "https://api.test/v2/filter")

    with pytest.raises(CircuitOpenError):
        await http.request("GET", "https://api.test/v2/filter")
