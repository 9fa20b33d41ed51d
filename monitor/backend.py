from collections.abc import AsyncIterator
import logging
from typing import Any

from google.cloud import monitoring_v3

from monitor.converters import (
    metric_descriptor_from_message,
    resource_descriptor_from_message,
    to_message,
)
from monitor.schemas import (
    CreateMetricDescriptorRequest,
    CreateTimeSeriesRequest,
    DeleteMetricDescriptorRequest,
    GetMetricDescriptorRequest,
    GetMonitoredResourceDescriptorRequest,
    ListMetricDescriptorsRequest,
    ListMonitoredResourceDescriptorsRequest,
    ListTimeSeriesRequest,
    MetricDescriptor,
    MonitoredResourceDescriptor,
)

logger = logging.getLogger(__name__)


class MonitoringBackend:
    """One round trip per call; retries belong to the transport."""

    def __init__(
        self,
        client: monitoring_v3.MetricServiceAsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    def _create_client(self) -> monitoring_v3.MetricServiceAsyncClient:
        logger.info('Creating metric service client')
        try:
            return monitoring_v3.MetricServiceAsyncClient()
        except Exception:
            logger.exception('Failed to create metric service client')
            raise

    async def connect(self) -> None:
        if self._client is not None:
            logger.debug('Metric service client already exists')
            return
        self._client = self._create_client()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            logger.info('Closing metric service transport')
            await self._client.transport.close()
            self._client = None
            logger.info('Metric service transport closed')

    @property
    def client(self) -> monitoring_v3.MetricServiceAsyncClient:
        # Created on first dispatch: credentials are resolved only once a
        # request has passed local validation.
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _call_options(self) -> dict[str, Any]:
        return {} if self.timeout is None else {'timeout': self.timeout}

    async def create_metric_descriptor(
        self, request: CreateMetricDescriptorRequest
    ) -> MetricDescriptor:
        logger.debug(
            'Creating metric descriptor',
            extra={'scope': request.name, 'type': request.metric_descriptor.type},
        )
        message = to_message(request)
        response = await self.client.create_metric_descriptor(
            request=message, **self._call_options()
        )
        return metric_descriptor_from_message(response)

    async def list_metric_descriptors(
        self, request: ListMetricDescriptorsRequest
    ) -> AsyncIterator[MetricDescriptor]:
        logger.debug('Listing metric descriptors', extra={'scope': request.name})
        message = to_message(request)
        pager = await self.client.list_metric_descriptors(
            request=message, **self._call_options()
        )
        async for descriptor in pager:
            yield metric_descriptor_from_message(descriptor)

    async def get_metric_descriptor(
        self, request: GetMetricDescriptorRequest
    ) -> MetricDescriptor:
        logger.debug(
            'Fetching metric descriptor', extra={'resource_name': request.name}
        )
        message = to_message(request)
        response = await self.client.get_metric_descriptor(
            request=message, **self._call_options()
        )
        return metric_descriptor_from_message(response)

    async def delete_metric_descriptor(
        self, request: DeleteMetricDescriptorRequest
    ) -> None:
        logger.debug(
            'Deleting metric descriptor', extra={'resource_name': request.name}
        )
        message = to_message(request)
        await self.client.delete_metric_descriptor(
            request=message, **self._call_options()
        )

    async def create_time_series(self, request: CreateTimeSeriesRequest) -> None:
        logger.debug(
            'Writing time series',
            extra={'scope': request.name, 'series_count': len(request.time_series)},
        )
        message = to_message(request)
        await self.client.create_time_series(
            request=message, **self._call_options()
        )

    async def list_time_series(
        self, request: ListTimeSeriesRequest
    ) -> AsyncIterator[Any]:
        logger.debug(
            'Listing time series',
            extra={'scope': request.name, 'filter': request.filter},
        )
        message = to_message(request)
        pager = await self.client.list_time_series(
            request=message, **self._call_options()
        )
        async for series in pager:
            yield series

    async def list_monitored_resource_descriptors(
        self, request: ListMonitoredResourceDescriptorsRequest
    ) -> AsyncIterator[MonitoredResourceDescriptor]:
        logger.debug(
            'Listing monitored resource descriptors', extra={'scope': request.name}
        )
        message = to_message(request)
        pager = await self.client.list_monitored_resource_descriptors(
            request=message, **self._call_options()
        )
        async for descriptor in pager:
            yield resource_descriptor_from_message(descriptor)

    async def get_monitored_resource_descriptor(
        self, request: GetMonitoredResourceDescriptorRequest
    ) -> MonitoredResourceDescriptor:
        logger.debug(
            'Fetching monitored resource descriptor',
            extra={'resource_name': request.name},
        )
        message = to_message(request)
        response = await self.client.get_monitored_resource_descriptor(
            request=message, **self._call_options()
        )
        return resource_descriptor_from_message(response)
