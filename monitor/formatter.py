from collections.abc import Iterable, Sequence

import orjson

from monitor.schemas import (
    Distribution,
    LabelDescriptor,
    MetricDescriptor,
    MonitoredResourceDescriptor,
    Point,
    TimeSeries,
)


class ConsoleFormatter:
    """Renders results as human-readable lines; not a stable format."""

    @staticmethod
    def _label_lines(labels: Iterable[LabelDescriptor], sep: str = ' - ') -> list[str]:
        return [
            f'  {label.key} ({label.value_type.value}){sep}{label.description}'
            for label in labels
        ]

    @staticmethod
    def _series_name(series: TimeSeries) -> str:
        name = series.metric.labels.get('instance_name')
        if name is None and series.resource is not None:
            name = series.resource.labels.get('instance_id')
        return name or series.metric.type

    @staticmethod
    def _point_value(points: Sequence[Point], index: int) -> str:
        if index >= len(points):
            return 'n/a'
        value = points[index].value.value
        if isinstance(value, Distribution):
            return f'mean={value.mean} count={value.count}'
        return str(value)

    @staticmethod
    def _period(seconds: int) -> tuple[int, str]:
        if seconds % 60 == 0:
            return seconds // 60, 'min'
        return seconds, 's'

    @staticmethod
    def format_point_value(point: Point) -> str:
        payload = point.value.model_dump(mode='json', exclude_none=True)
        return orjson.dumps(payload).decode('utf-8')

    def format_descriptor(self, descriptor: MetricDescriptor) -> list[str]:
        return [
            f'Name: {descriptor.display_name}',
            f'Description: {descriptor.description}',
            f'Type: {descriptor.type}',
            f'Kind: {descriptor.metric_kind.value}',
            f'Value Type: {descriptor.value_type.value}',
            f'Unit: {descriptor.unit}',
            'Labels:',
            *self._label_lines(descriptor.labels),
        ]

    def format_created_descriptor(self, descriptor: MetricDescriptor) -> list[str]:
        return ['Created custom Metric:', '', *self.format_descriptor(descriptor)]

    @staticmethod
    def format_descriptor_names(descriptors: Iterable[MetricDescriptor]) -> list[str]:
        return ['Metric Descriptors:', *(d.name or d.type for d in descriptors)]

    @staticmethod
    def format_deleted(metric_type: str) -> list[str]:
        return [f'Deleted {metric_type}']

    def format_written(self, point: Point) -> list[str]:
        return [
            'Done writing time series data.',
            f'  {point.interval.end_time.isoformat()}: {self._point_value([point], 0)}',
        ]

    def format_series_points(self, series: TimeSeries) -> list[str]:
        return [
            f'{self._series_name(series)}:',
            *(self.format_point_value(point) for point in series.points),
        ]

    def format_series_headers(self, series_list: Iterable[TimeSeries]) -> list[str]:
        return [
            'Found data points for the following instances:',
            *(self._series_name(series) for series in series_list),
        ]

    def format_aggregate(
        self,
        series_list: Iterable[TimeSeries],
        alignment_period: int,
        title: str = 'CPU utilization:',
    ) -> list[str]:
        amount, unit = self._period(alignment_period)
        lines = [title]
        for series in series_list:
            lines.extend(
                [
                    self._series_name(series),
                    f'  Now: {self._point_value(series.points, 0)}',
                    f'  {amount} {unit} ago: {self._point_value(series.points, 1)}',
                ]
            )
        return lines

    def format_reduction(
        self,
        series_list: Sequence[TimeSeries],
        alignment_period: int,
        title: str = 'Average CPU utilization across all GCE instances:',
    ) -> list[str]:
        if not series_list:
            return ['No data']
        points = series_list[0].points
        amount, unit = self._period(alignment_period)
        return [
            title,
            f'  Last {amount} {unit}: {self._point_value(points, 0)}',
            f'  {amount}-{amount * 2} {unit} ago: {self._point_value(points, 1)}',
        ]

    def format_resource_descriptors(
        self, descriptors: Iterable[MonitoredResourceDescriptor]
    ) -> list[str]:
        lines = ['Monitored Resource Descriptors:']
        for descriptor in descriptors:
            lines.append(descriptor.name or descriptor.type)
            lines.append(f'  Type: {descriptor.type}')
            if descriptor.labels:
                lines.append('  Labels:')
                lines.extend(
                    f'  {line}' for line in self._label_lines(descriptor.labels, ': ')
                )
            lines.append('')
        return lines

    def format_resource_descriptor(
        self, descriptor: MonitoredResourceDescriptor
    ) -> list[str]:
        return [
            f'Name: {descriptor.display_name}',
            f'Description: {descriptor.description}',
            f'Type: {descriptor.type}',
            'Labels:',
            *self._label_lines(descriptor.labels),
        ]
