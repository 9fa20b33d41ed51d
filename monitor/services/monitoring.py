from collections.abc import AsyncIterator
from datetime import datetime
import logging
from typing import Any

from monitor.backend import MonitoringBackend
from monitor.query_builder import QueryBuilder, typed_value
from monitor.schemas import (
    Aggregation,
    Aligner,
    LabelDescriptor,
    LabelValueType,
    MetricDescriptor,
    MetricKind,
    MonitoredResource,
    MonitoredResourceDescriptor,
    Point,
    Reducer,
    TimeInterval,
    TimeSeries,
    TimeSeriesView,
    ValueType,
)

logger = logging.getLogger(__name__)

DAILY_SALES_METRIC_TYPE = 'custom.googleapis.com/stores/daily_sales'
CPU_UTILIZATION_FILTER = (
    'metric.type="compute.googleapis.com/instance/cpu/utilization"'
)
DEFAULT_ALIGNMENT_PERIOD = 600
DEFAULT_STORE_LABELS = {'store_id': 'Pittsburgh'}
DEFAULT_SALES_VALUE = 123.45


def daily_sales_descriptor(
    metric_type: str = DAILY_SALES_METRIC_TYPE,
) -> MetricDescriptor:
    return MetricDescriptor(
        type=metric_type,
        display_name='Daily Sales',
        description='Daily sales records from all branch stores.',
        metric_kind=MetricKind.GAUGE,
        value_type=ValueType.DOUBLE,
        unit='{USD}',
        labels=[
            LabelDescriptor(
                key='store_id',
                value_type=LabelValueType.STRING,
                description='The ID of the store.',
            )
        ],
    )


class MonitoringService:
    def __init__(self, builder: QueryBuilder, backend: MonitoringBackend) -> None:
        self.builder = builder
        self.backend = backend

    async def create_descriptor(
        self, descriptor: MetricDescriptor | None = None
    ) -> MetricDescriptor:
        request = self.builder.build_descriptor_create_request(
            descriptor or daily_sales_descriptor()
        )
        created = await self.backend.create_metric_descriptor(request)
        logger.info('Metric descriptor created', extra={'type': created.type})
        return created

    def list_descriptors(self) -> AsyncIterator[MetricDescriptor]:
        request = self.builder.build_list_descriptors_request()
        return self.backend.list_metric_descriptors(request)

    async def get_descriptor(self, metric_type: str) -> MetricDescriptor:
        request = self.builder.build_get_descriptor_request(metric_type)
        return await self.backend.get_metric_descriptor(request)

    async def delete_descriptor(self, metric_type: str) -> None:
        request = self.builder.build_delete_descriptor_request(metric_type)
        await self.backend.delete_metric_descriptor(request)
        logger.info('Metric descriptor deleted', extra={'type': metric_type})

    async def write_point(
        self,
        value: bool | int | float | str = DEFAULT_SALES_VALUE,
        metric_type: str = DAILY_SALES_METRIC_TYPE,
        labels: dict[str, str] | None = None,
        resource: MonitoredResource | None = None,
        end_time: datetime | float | None = None,
    ) -> Point:
        if resource is None:
            resource = MonitoredResource(
                type='global', labels={'project_id': self.builder.project_id}
            )
        point = {
            'interval': {
                'end_time': self.builder.now() if end_time is None else end_time
            },
            'value': typed_value(value),
        }
        request = self.builder.build_write_request(
            metric_type,
            DEFAULT_STORE_LABELS if labels is None else labels,
            resource,
            point,
        )
        await self.backend.create_time_series(request)
        written = request.time_series[0].points[0]
        logger.info(
            'Time series point written',
            extra={'type': metric_type, 'end_time': written.interval.end_time},
        )
        return written

    def read(
        self,
        filter_str: str,
        interval: TimeInterval | None = None,
        aggregation: Aggregation | dict[str, Any] | None = None,
        view: TimeSeriesView = TimeSeriesView.FULL,
    ) -> AsyncIterator[TimeSeries]:
        # Built eagerly so that validation fails before iteration starts.
        request = self.builder.build_read_request(
            filter_str, interval=interval, aggregation=aggregation, view=view
        )
        return self.builder.anormalize_time_series_result(
            self.backend.list_time_series(request)
        )

    def read_fields(
        self, filter_str: str = CPU_UTILIZATION_FILTER
    ) -> AsyncIterator[TimeSeries]:
        return self.read(filter_str, view=TimeSeriesView.HEADERS)

    def read_aggregate(
        self,
        filter_str: str = CPU_UTILIZATION_FILTER,
        alignment_period: int = DEFAULT_ALIGNMENT_PERIOD,
        aligner: Aligner = Aligner.ALIGN_MEAN,
    ) -> AsyncIterator[TimeSeries]:
        aggregation = {
            'alignment_period': alignment_period,
            'per_series_aligner': aligner,
        }
        return self.read(filter_str, aggregation=aggregation)

    def read_reduce(
        self,
        filter_str: str = CPU_UTILIZATION_FILTER,
        alignment_period: int = DEFAULT_ALIGNMENT_PERIOD,
        aligner: Aligner = Aligner.ALIGN_MEAN,
        reducer: Reducer = Reducer.REDUCE_MEAN,
    ) -> AsyncIterator[TimeSeries]:
        aggregation = {
            'alignment_period': alignment_period,
            'per_series_aligner': aligner,
            'cross_series_reducer': reducer,
        }
        return self.read(filter_str, aggregation=aggregation)

    def list_resources(self) -> AsyncIterator[MonitoredResourceDescriptor]:
        request = self.builder.build_list_resources_request()
        return self.backend.list_monitored_resource_descriptors(request)

    async def get_resource(self, resource_type: str) -> MonitoredResourceDescriptor:
        request = self.builder.build_get_resource_request(resource_type)
        return await self.backend.get_monitored_resource_descriptor(request)
