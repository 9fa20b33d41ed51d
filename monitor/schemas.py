from datetime import UTC, datetime
from enum import Enum
import math
from typing import Any, ClassVar, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from monitor.exceptions import InvalidArgument
from monitor.validators import NameValidator, parse_duration

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class MetricKind(str, Enum):
    METRIC_KIND_UNSPECIFIED = 'METRIC_KIND_UNSPECIFIED'
    GAUGE = 'GAUGE'
    DELTA = 'DELTA'
    CUMULATIVE = 'CUMULATIVE'


class ValueType(str, Enum):
    VALUE_TYPE_UNSPECIFIED = 'VALUE_TYPE_UNSPECIFIED'
    BOOL = 'BOOL'
    INT64 = 'INT64'
    DOUBLE = 'DOUBLE'
    STRING = 'STRING'
    DISTRIBUTION = 'DISTRIBUTION'
    MONEY = 'MONEY'


class LabelValueType(str, Enum):
    STRING = 'STRING'
    BOOL = 'BOOL'
    INT64 = 'INT64'


class Aligner(str, Enum):
    ALIGN_NONE = 'ALIGN_NONE'
    ALIGN_DELTA = 'ALIGN_DELTA'
    ALIGN_RATE = 'ALIGN_RATE'
    ALIGN_INTERPOLATE = 'ALIGN_INTERPOLATE'
    ALIGN_NEXT_OLDER = 'ALIGN_NEXT_OLDER'
    ALIGN_MIN = 'ALIGN_MIN'
    ALIGN_MAX = 'ALIGN_MAX'
    ALIGN_MEAN = 'ALIGN_MEAN'
    ALIGN_COUNT = 'ALIGN_COUNT'
    ALIGN_SUM = 'ALIGN_SUM'
    ALIGN_STDDEV = 'ALIGN_STDDEV'
    ALIGN_COUNT_TRUE = 'ALIGN_COUNT_TRUE'
    ALIGN_COUNT_FALSE = 'ALIGN_COUNT_FALSE'
    ALIGN_FRACTION_TRUE = 'ALIGN_FRACTION_TRUE'
    ALIGN_PERCENTILE_99 = 'ALIGN_PERCENTILE_99'
    ALIGN_PERCENTILE_95 = 'ALIGN_PERCENTILE_95'
    ALIGN_PERCENTILE_50 = 'ALIGN_PERCENTILE_50'
    ALIGN_PERCENTILE_05 = 'ALIGN_PERCENTILE_05'
    ALIGN_PERCENT_CHANGE = 'ALIGN_PERCENT_CHANGE'


class Reducer(str, Enum):
    REDUCE_NONE = 'REDUCE_NONE'
    REDUCE_MEAN = 'REDUCE_MEAN'
    REDUCE_MIN = 'REDUCE_MIN'
    REDUCE_MAX = 'REDUCE_MAX'
    REDUCE_SUM = 'REDUCE_SUM'
    REDUCE_STDDEV = 'REDUCE_STDDEV'
    REDUCE_COUNT = 'REDUCE_COUNT'
    REDUCE_COUNT_TRUE = 'REDUCE_COUNT_TRUE'
    REDUCE_COUNT_FALSE = 'REDUCE_COUNT_FALSE'
    REDUCE_FRACTION_TRUE = 'REDUCE_FRACTION_TRUE'
    REDUCE_PERCENTILE_99 = 'REDUCE_PERCENTILE_99'
    REDUCE_PERCENTILE_95 = 'REDUCE_PERCENTILE_95'
    REDUCE_PERCENTILE_50 = 'REDUCE_PERCENTILE_50'
    REDUCE_PERCENTILE_05 = 'REDUCE_PERCENTILE_05'


class TimeSeriesView(str, Enum):
    FULL = 'FULL'
    HEADERS = 'HEADERS'


class LabelDescriptor(BaseModel):
    key: str
    value_type: LabelValueType = LabelValueType.STRING
    description: str = ''


class MetricDescriptor(BaseModel):
    name: str | None = None
    type: str
    display_name: str = ''
    description: str = ''
    metric_kind: MetricKind = MetricKind.METRIC_KIND_UNSPECIFIED
    value_type: ValueType = ValueType.VALUE_TYPE_UNSPECIFIED
    unit: str = ''
    labels: list[LabelDescriptor] = Field(default_factory=list)
    launch_stage: str | None = None
    monitored_resource_types: list[str] = Field(default_factory=list)


class MonitoredResourceDescriptor(BaseModel):
    name: str | None = None
    type: str
    display_name: str = ''
    description: str = ''
    labels: list[LabelDescriptor] = Field(default_factory=list)
    launch_stage: str | None = None


class TimeInterval(BaseModel):
    start_time: datetime | None = None
    end_time: datetime

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        if isinstance(value, dict) and 'seconds' in value:
            seconds, nanos = value['seconds'], value.get('nanos', 0)
            if not all(
                isinstance(part, int | float) and not isinstance(part, bool)
                for part in (seconds, nanos)
            ):
                raise ValueError('timestamp seconds and nanos must be numbers')
            value = seconds + nanos / 1_000_000_000
        if isinstance(value, bool):
            raise ValueError(
                'timestamp must be a datetime, ISO-8601 string or epoch seconds'
            )
        if isinstance(value, int | float):
            if value < 0 or (isinstance(value, float) and not math.isfinite(value)):
                raise ValueError(
                    f'timestamp must be non-negative epoch seconds, got {value}'
                )
            try:
                return datetime.fromtimestamp(value, tz=UTC)
            except (OverflowError, OSError, ValueError) as e:
                raise ValueError(f'timestamp out of range: {value}') from e
        return value

    @field_validator('start_time', 'end_time', mode='after')
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def is_ordered(self) -> bool:
        return self.start_time is None or self.start_time <= self.end_time


class Distribution(BaseModel):
    model_config = ConfigDict(extra='allow')

    count: int = 0
    mean: float = 0.0
    sum_of_squared_deviation: float = 0.0
    bucket_counts: list[int] = Field(default_factory=list)


class TypedValue(BaseModel):
    bool_value: bool | None = None
    int64_value: int | None = Field(default=None, ge=INT64_MIN, le=INT64_MAX)
    double_value: float | None = None
    string_value: str | None = None
    distribution_value: Distribution | None = None

    def _set_fields(self) -> list[str]:
        return [
            name for name in type(self).model_fields if getattr(self, name) is not None
        ]

    @model_validator(mode='after')
    def _exactly_one(self) -> Self:
        set_fields = self._set_fields()
        if len(set_fields) != 1:
            raise ValueError(
                f'exactly one value must be set, got {len(set_fields)}: {set_fields}'
            )
        return self

    @property
    def kind(self) -> str:
        return self._set_fields()[0]

    @property
    def value(self) -> bool | int | float | str | Distribution:
        return getattr(self, self.kind)


class Point(BaseModel):
    interval: TimeInterval
    value: TypedValue


class Metric(BaseModel):
    type: str
    labels: dict[str, str] = Field(default_factory=dict)


class MonitoredResource(BaseModel):
    type: str
    labels: dict[str, str] = Field(default_factory=dict)


class TimeSeries(BaseModel):
    metric: Metric
    resource: MonitoredResource | None = None
    metric_kind: MetricKind | None = None
    value_type: ValueType | None = None
    unit: str | None = None
    points: list[Point] = Field(default_factory=list)


class Aggregation(BaseModel):
    alignment_period: int | None = Field(default=None, gt=0)
    per_series_aligner: Aligner | None = None
    cross_series_reducer: Reducer | None = None
    group_by_fields: list[str] = Field(default_factory=list)

    @field_validator('alignment_period', mode='before')
    @classmethod
    def _parse_period(cls, value: Any) -> Any:
        if isinstance(value, dict) and 'seconds' in value:
            return value['seconds']
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except InvalidArgument as e:
                raise ValueError(f'invalid duration: {value!r}') from e
        return value

    @field_serializer('alignment_period', when_used='json')
    def _period_as_duration(self, value: int | None) -> str | None:
        return None if value is None else f'{value}s'

    @property
    def reduces(self) -> bool:
        return self.cross_series_reducer not in (None, Reducer.REDUCE_NONE)


class _ScopedRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str

    @model_validator(mode='after')
    def _validate_name(self) -> Self:
        NameValidator.validate_scope(self.name)
        return self


class _DescriptorNameRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    COLLECTION: ClassVar[str] = ''

    name: str

    def split_name(self) -> tuple[str, str]:
        scope, sep, descriptor_type = self.name.partition(f'/{self.COLLECTION}/')
        if not sep or not descriptor_type:
            raise ValueError(
                f'name must look like projects/<project-id>/{self.COLLECTION}/<type>, '
                f'got {self.name!r}'
            )
        return scope, descriptor_type

    @model_validator(mode='after')
    def _validate_name(self) -> Self:
        scope, _ = self.split_name()
        NameValidator.validate_scope(scope)
        return self


class CreateMetricDescriptorRequest(_ScopedRequest):
    metric_descriptor: MetricDescriptor

    @model_validator(mode='after')
    def _validate_descriptor(self) -> Self:
        descriptor = self.metric_descriptor
        NameValidator.validate_metric_type(descriptor.type)
        if not descriptor.display_name.strip():
            raise ValueError('metric descriptor display_name must not be empty')
        if not descriptor.description.strip():
            raise ValueError('metric descriptor description must not be empty')
        if descriptor.metric_kind is MetricKind.METRIC_KIND_UNSPECIFIED:
            raise ValueError('metric descriptor metric_kind must be set')
        if descriptor.value_type is ValueType.VALUE_TYPE_UNSPECIFIED:
            raise ValueError('metric descriptor value_type must be set')

        seen: set[str] = set()
        for label in descriptor.labels:
            NameValidator.validate_label_key(label.key)
            if label.key in seen:
                raise ValueError(f'duplicate label key: {label.key!r}')
            seen.add(label.key)
        return self


class ListMetricDescriptorsRequest(_ScopedRequest):
    filter: str | None = None


class GetMetricDescriptorRequest(_DescriptorNameRequest):
    COLLECTION: ClassVar[str] = 'metricDescriptors'


class DeleteMetricDescriptorRequest(_DescriptorNameRequest):
    COLLECTION: ClassVar[str] = 'metricDescriptors'

    @model_validator(mode='after')
    def _validate_user_defined(self) -> Self:
        _, metric_type = self.split_name()
        if not NameValidator.is_user_defined(metric_type):
            raise ValueError(
                'only user-defined metric descriptors can be deleted, '
                f'got {metric_type!r}'
            )
        return self


class ListMonitoredResourceDescriptorsRequest(_ScopedRequest):
    filter: str | None = None


class GetMonitoredResourceDescriptorRequest(_DescriptorNameRequest):
    COLLECTION: ClassVar[str] = 'monitoredResourceDescriptors'


class CreateTimeSeriesRequest(_ScopedRequest):
    time_series: list[TimeSeries] = Field(min_length=1)

    @model_validator(mode='after')
    def _validate_series(self) -> Self:
        for series in self.time_series:
            NameValidator.validate_metric_type(series.metric.type)
            if series.resource is None:
                raise ValueError('time series must reference a monitored resource')
            if not series.points:
                raise ValueError('time series must contain at least one point')
            for point in series.points:
                if not point.interval.is_ordered():
                    raise ValueError('point interval start_time is after end_time')
        return self


class ListTimeSeriesRequest(_ScopedRequest):
    filter: str
    interval: TimeInterval
    aggregation: Aggregation | None = None
    view: TimeSeriesView = TimeSeriesView.FULL

    @model_validator(mode='after')
    def _validate_query(self) -> Self:
        if not self.filter.strip():
            raise ValueError('filter must not be empty')
        if not self.interval.is_ordered():
            raise ValueError('interval start_time is after end_time')
        aggregation = self.aggregation
        if aggregation is not None and aggregation.reduces:
            if aggregation.alignment_period is None:
                raise ValueError('cross-series reduction requires an alignment period')
        return self
