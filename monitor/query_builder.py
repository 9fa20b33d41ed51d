"""Validated request construction for the metric service.

Every builder method is a pure transformation: it validates its input and
returns a request record, raising ``InvalidArgument`` before anything is sent.
Aggregation parameters are forwarded as given; alignment and reduction are
computed by the backend.
"""

from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator
from datetime import UTC, datetime, timedelta
import logging
import math
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from monitor.converters import time_series_from_message
from monitor.exceptions import InvalidArgument
from monitor.schemas import (
    Aggregation,
    CreateMetricDescriptorRequest,
    CreateTimeSeriesRequest,
    DeleteMetricDescriptorRequest,
    GetMetricDescriptorRequest,
    GetMonitoredResourceDescriptorRequest,
    ListMetricDescriptorsRequest,
    ListMonitoredResourceDescriptorsRequest,
    ListTimeSeriesRequest,
    Metric,
    MetricDescriptor,
    MonitoredResource,
    Point,
    TimeInterval,
    TimeSeries,
    TimeSeriesView,
    TypedValue,
)
from monitor.validators import NameValidator

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_SECONDS = 20 * 60

RequestT = TypeVar('RequestT', bound=BaseModel)


def now_utc() -> datetime:
    return datetime.now(UTC)


def project_path(project_id: str) -> str:
    return f'projects/{NameValidator.validate_project_id(project_id)}'


def metric_descriptor_path(project_id: str, metric_type: str) -> str:
    return f'{project_path(project_id)}/metricDescriptors/{metric_type}'


def monitored_resource_descriptor_path(project_id: str, resource_type: str) -> str:
    return f'{project_path(project_id)}/monitoredResourceDescriptors/{resource_type}'


def typed_value(value: bool | int | float | str) -> TypedValue:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return _validate(TypedValue, {'bool_value': value})
    if isinstance(value, int):
        return _validate(TypedValue, {'int64_value': value})
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidArgument(f'point value must be finite, got {value}', 'value')
        return _validate(TypedValue, {'double_value': value})
    if isinstance(value, str):
        return _validate(TypedValue, {'string_value': value})
    raise InvalidArgument(
        f'unsupported point value type: {type(value).__name__}', 'value'
    )


def _validate(model: type[RequestT], payload: dict[str, Any]) -> RequestT:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidArgument.from_validation_error(e) from e


class QueryBuilder:
    def __init__(
        self,
        project_id: str,
        clock: Callable[[], datetime] = now_utc,
        default_lookback_seconds: int = DEFAULT_LOOKBACK_SECONDS,
    ) -> None:
        if default_lookback_seconds <= 0:
            raise InvalidArgument(
                'default lookback must be positive', 'default_lookback_seconds'
            )
        self.project_id = NameValidator.validate_project_id(project_id)
        self.scope = project_path(project_id)
        self.clock = clock
        self.default_lookback = timedelta(seconds=default_lookback_seconds)

    def now(self) -> datetime:
        return self.clock()

    def _scope(self, scope: str | None) -> str:
        return self.scope if scope is None else scope

    def _descriptor_name(self, scope: str | None, collection: str, type_: str) -> str:
        if not type_:
            raise InvalidArgument('descriptor type must not be empty', 'name')
        return f'{self._scope(scope)}/{collection}/{type_}'

    def default_interval(self) -> TimeInterval:
        end = self.now()
        return TimeInterval(start_time=end - self.default_lookback, end_time=end)

    def build_descriptor_create_request(
        self,
        descriptor: MetricDescriptor | dict[str, Any],
        scope: str | None = None,
    ) -> CreateMetricDescriptorRequest:
        return _validate(
            CreateMetricDescriptorRequest,
            {'name': self._scope(scope), 'metric_descriptor': descriptor},
        )

    def build_list_descriptors_request(
        self, scope: str | None = None, filter_str: str | None = None
    ) -> ListMetricDescriptorsRequest:
        return _validate(
            ListMetricDescriptorsRequest,
            {'name': self._scope(scope), 'filter': filter_str or None},
        )

    def build_get_descriptor_request(
        self, metric_type: str, scope: str | None = None
    ) -> GetMetricDescriptorRequest:
        name = self._descriptor_name(scope, 'metricDescriptors', metric_type)
        return _validate(GetMetricDescriptorRequest, {'name': name})

    def build_delete_descriptor_request(
        self, metric_type: str, scope: str | None = None
    ) -> DeleteMetricDescriptorRequest:
        name = self._descriptor_name(scope, 'metricDescriptors', metric_type)
        return _validate(DeleteMetricDescriptorRequest, {'name': name})

    def build_list_resources_request(
        self, scope: str | None = None, filter_str: str | None = None
    ) -> ListMonitoredResourceDescriptorsRequest:
        return _validate(
            ListMonitoredResourceDescriptorsRequest,
            {'name': self._scope(scope), 'filter': filter_str or None},
        )

    def build_get_resource_request(
        self, resource_type: str, scope: str | None = None
    ) -> GetMonitoredResourceDescriptorRequest:
        NameValidator.validate_resource_type(resource_type)
        name = self._descriptor_name(
            scope, 'monitoredResourceDescriptors', resource_type
        )
        return _validate(GetMonitoredResourceDescriptorRequest, {'name': name})

    def build_write_request(
        self,
        metric_type: str,
        labels: dict[str, str] | None,
        resource: MonitoredResource | dict[str, Any],
        point: Point | dict[str, Any],
        scope: str | None = None,
    ) -> CreateTimeSeriesRequest:
        """Build a single-point write.

        Whether the value matches the descriptor's value type is checked by
        the backend; locally only the point's timestamps are validated.
        """
        for key in labels or {}:
            NameValidator.validate_label_key(key)
        series = {
            'metric': Metric(type=metric_type, labels=dict(labels or {})),
            'resource': resource,
            'points': [point],
        }
        return _validate(
            CreateTimeSeriesRequest,
            {'name': self._scope(scope), 'time_series': [series]},
        )

    def build_read_request(
        self,
        filter_str: str,
        interval: TimeInterval | dict[str, Any] | None = None,
        aggregation: Aggregation | dict[str, Any] | None = None,
        view: TimeSeriesView = TimeSeriesView.FULL,
        scope: str | None = None,
    ) -> ListTimeSeriesRequest:
        if interval is None:
            interval = self.default_interval()
        request = _validate(
            ListTimeSeriesRequest,
            {
                'name': self._scope(scope),
                'filter': filter_str,
                'interval': interval,
                'aggregation': aggregation,
                'view': view,
            },
        )
        logger.debug(
            'Built time series read request',
            extra={
                'scope': request.name,
                'filter': request.filter,
                'start_time': request.interval.start_time,
                'end_time': request.interval.end_time,
                'aggregated': request.aggregation is not None,
            },
        )
        return request

    @staticmethod
    def normalize_time_series_result(raw_series: Iterable[Any]) -> Iterator[TimeSeries]:
        for raw in raw_series:
            yield time_series_from_message(raw)

    @staticmethod
    async def anormalize_time_series_result(
        raw_series: AsyncIterable[Any],
    ) -> AsyncIterator[TimeSeries]:
        async for raw in raw_series:
            yield time_series_from_message(raw)
