from datetime import UTC, datetime
from typing import Any

import pytest

from monitor.backend import MonitoringBackend
from monitor.query_builder import QueryBuilder
from monitor.services.monitoring import MonitoringService

FROZEN_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
PROJECT_ID = 'my-project'


class FakePager:
    def __init__(self, items: list[Any]):
        self._items = items

    async def __aiter__(self):
        for item in self._items:
            yield item


class FakeTransport:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeMetricClient:
    """In-memory stand-in for MetricServiceAsyncClient."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any, dict[str, Any]]] = []
        self.descriptors: list[Any] = []
        self.resources: list[Any] = []
        self.series: list[Any] = []
        self.descriptor: Any = None
        self.resource: Any = None
        self.error: Exception | None = None
        self.transport = FakeTransport()

    def _record(self, method: str, request: Any, kwargs: dict[str, Any]) -> None:
        self.calls.append((method, request, kwargs))
        if self.error is not None:
            raise self.error

    def requests(self, method: str) -> list[Any]:
        return [request for name, request, _ in self.calls if name == method]

    async def create_metric_descriptor(self, request, **kwargs):
        self._record('create_metric_descriptor', request, kwargs)
        return request.metric_descriptor

    async def list_metric_descriptors(self, request, **kwargs):
        self._record('list_metric_descriptors', request, kwargs)
        return FakePager(self.descriptors)

    async def get_metric_descriptor(self, request, **kwargs):
        self._record('get_metric_descriptor', request, kwargs)
        return self.descriptor

    async def delete_metric_descriptor(self, request, **kwargs):
        self._record('delete_metric_descriptor', request, kwargs)

    async def create_time_series(self, request, **kwargs):
        self._record('create_time_series', request, kwargs)

    async def list_time_series(self, request, **kwargs):
        self._record('list_time_series', request, kwargs)
        return FakePager(self.series)

    async def list_monitored_resource_descriptors(self, request, **kwargs):
        self._record('list_monitored_resource_descriptors', request, kwargs)
        return FakePager(self.resources)

    async def get_monitored_resource_descriptor(self, request, **kwargs):
        self._record('get_monitored_resource_descriptor', request, kwargs)
        return self.resource


@pytest.fixture
def builder() -> QueryBuilder:
    return QueryBuilder(PROJECT_ID, clock=lambda: FROZEN_NOW)


@pytest.fixture
def fake_client() -> FakeMetricClient:
    return FakeMetricClient()


@pytest.fixture
def backend(fake_client: FakeMetricClient) -> MonitoringBackend:
    return MonitoringBackend(client=fake_client)


@pytest.fixture
def service(builder: QueryBuilder, backend: MonitoringBackend) -> MonitoringService:
    return MonitoringService(builder, backend)


@pytest.fixture
def frozen_now() -> datetime:
    return FROZEN_NOW
