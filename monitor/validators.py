import re
from typing import ClassVar, Literal, NamedTuple, cast

from monitor.exceptions import InvalidArgument

DurationUnit = Literal['s', 'm', 'h', 'd', 'w']

USER_DEFINED_METRIC_PREFIXES = (
    'custom.googleapis.com/',
    'external.googleapis.com/',
    'workload.googleapis.com/',
)


class Duration(NamedTuple):
    value: float
    unit: DurationUnit

    @property
    def seconds(self) -> int:
        multipliers = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400, 'w': 604800}
        return int(round(self.value * multipliers[self.unit]))


class NameValidator:
    METRIC_TYPE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(
        r'^[a-zA-Z0-9_.\-]+\.[a-zA-Z]{2,}/\S+$'
    )
    LABEL_KEY_PATTERN: ClassVar[re.Pattern[str]] = re.compile(
        r'^[a-zA-Z_][a-zA-Z0-9_]*$'
    )
    RESOURCE_TYPE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(
        r'^[a-zA-Z][a-zA-Z0-9_.]*$'
    )
    PROJECT_ID_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r'^[^/\s]+$')
    SCOPE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r'^projects/[^/\s]+$')

    @classmethod
    def validate_metric_type(cls, metric_type: str) -> str:
        if not metric_type:
            raise InvalidArgument('metric type must not be empty', 'metric_type')
        if not cls.METRIC_TYPE_PATTERN.fullmatch(metric_type):
            raise InvalidArgument(
                f'invalid metric type: {metric_type!r}', 'metric_type'
            )
        return metric_type

    @classmethod
    def validate_label_key(cls, key: str) -> str:
        if not key:
            raise InvalidArgument('label key must not be empty', 'labels')
        if not cls.LABEL_KEY_PATTERN.fullmatch(key):
            raise InvalidArgument(f'invalid label key: {key!r}', 'labels')
        return key

    @classmethod
    def validate_resource_type(cls, resource_type: str) -> str:
        if not resource_type:
            raise InvalidArgument('resource type must not be empty', 'resource_type')
        if not cls.RESOURCE_TYPE_PATTERN.fullmatch(resource_type):
            raise InvalidArgument(
                f'invalid resource type: {resource_type!r}', 'resource_type'
            )
        return resource_type

    @classmethod
    def validate_project_id(cls, project_id: str) -> str:
        if not project_id or not cls.PROJECT_ID_PATTERN.fullmatch(project_id):
            raise InvalidArgument(f'invalid project id: {project_id!r}', 'project_id')
        return project_id

    @classmethod
    def validate_scope(cls, scope: str) -> str:
        if not cls.SCOPE_PATTERN.fullmatch(scope):
            raise InvalidArgument(
                f'scope must look like projects/<project-id>, got {scope!r}', 'name'
            )
        return scope

    @staticmethod
    def is_user_defined(metric_type: str) -> bool:
        return metric_type.startswith(USER_DEFINED_METRIC_PREFIXES)


_DURATION_PATTERN = re.compile(r'^(\d+(?:\.\d+)?)\s*([smhdw])?$')


def parse_duration(text: str) -> int:
    """Parse '600s', '10m', '1.5h' or a bare number of seconds into seconds."""
    match = _DURATION_PATTERN.match(text.strip().lower())
    if not match:
        raise InvalidArgument(f'invalid duration: {text!r}', 'alignment_period')

    number, unit = match.groups()
    duration = Duration(value=float(number), unit=cast(DurationUnit, unit or 's'))
    if duration.seconds <= 0:
        raise InvalidArgument(
            f'duration must be at least one second: {text!r}', 'alignment_period'
        )
    return duration.seconds
