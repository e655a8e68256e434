import httpx
import pytest

from engram_mcp.config import BackendConfig
from engram_mcp.executor import BackendHealth, RequestExecutor
from engram_mcp.rate_limiter import SlidingWindowRateLimiter
from engram_mcp.services.memory_proxy import MemoryProxy


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBackend:
    """MockTransport handler that replays queued responses and counts calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("backend called more times than expected")
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        # fresh copy per call; httpx binds a response to a single request
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)


@pytest.fixture
def backend_config():
    return BackendConfig(
        api_key="test-key",
        user_id="test-user",
        base_url="http://localhost:3001",
        timeout_ms=1000,
        max_retries=2,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_executor(backend_config, sleeps):
    def _make(backend, config=None, health=None):
        async def fake_sleep(seconds):
            sleeps.append(seconds)

        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        return RequestExecutor(
            config or backend_config,
            client=client,
            health=health or BackendHealth(),
            sleep=fake_sleep,
        )
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_proxy(backend_config, make_executor, clock):
    def _make(backend, config=None):
        config = config or backend_config
        return MemoryProxy(
            config,
            executor=make_executor(backend, config=config),
            rate_limiter=SlidingWindowRateLimiter(clock=clock),
        )
    return _make
