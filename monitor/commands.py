import argparse
from collections.abc import Awaitable, Callable, Iterable

from monitor.formatter import ConsoleFormatter
from monitor.schemas import Aligner, Reducer
from monitor.services.monitoring import (
    CPU_UTILIZATION_FILTER,
    DAILY_SALES_METRIC_TYPE,
    DEFAULT_ALIGNMENT_PERIOD,
    DEFAULT_SALES_VALUE,
    MonitoringService,
    daily_sales_descriptor,
)
from monitor.validators import parse_duration

Emit = Callable[[Iterable[str]], None]
CommandHandler = Callable[
    [MonitoringService, ConsoleFormatter, argparse.Namespace, Emit], Awaitable[None]
]

COMMANDS: dict[str, CommandHandler] = {}


def command(name: str) -> Callable[[CommandHandler], CommandHandler]:
    def register(handler: CommandHandler) -> CommandHandler:
        COMMANDS[name] = handler
        return handler

    return register


def label_pair(text: str) -> tuple[str, str]:
    key, sep, value = text.partition('=')
    if not sep or not key:
        raise argparse.ArgumentTypeError(f'expected key=value, got {text!r}')
    return key, value


def point_value(text: str) -> bool | int | float | str:
    lowered = text.lower()
    if lowered in ('true', 'false'):
        return lowered == 'true'
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            continue
    return text


def duration(text: str) -> int:
    try:
        return parse_duration(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _title(args: argparse.Namespace, default: str) -> str:
    return default if args.filter == CPU_UTILIZATION_FILTER else f'{args.filter}:'


@command('create')
async def create_descriptor(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    descriptor = await service.create_descriptor(
        daily_sales_descriptor(args.metric_type)
    )
    emit(formatter.format_created_descriptor(descriptor))


@command('list')
async def list_descriptors(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    descriptors = [d async for d in service.list_descriptors()]
    emit(formatter.format_descriptor_names(descriptors))


@command('get')
async def get_descriptor(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    descriptor = await service.get_descriptor(args.metric_id)
    emit(formatter.format_descriptor(descriptor))


@command('delete')
async def delete_descriptor(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    await service.delete_descriptor(args.metric_id)
    emit(formatter.format_deleted(args.metric_id))


@command('write')
async def write_point(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    labels = dict(args.labels) if args.labels else None
    point = await service.write_point(
        value=args.value, metric_type=args.metric_type, labels=labels
    )
    emit(formatter.format_written(point))


@command('read')
async def read_series(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    async for series in service.read(args.filter):
        emit(formatter.format_series_points(series))


@command('read-fields')
async def read_fields(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    series_list = [s async for s in service.read_fields(args.filter)]
    emit(formatter.format_series_headers(series_list))


@command('read-aggregate')
async def read_aggregate(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    series_list = [
        s
        async for s in service.read_aggregate(
            args.filter, alignment_period=args.alignment_period, aligner=args.aligner
        )
    ]
    title = _title(args, 'CPU utilization:')
    emit(formatter.format_aggregate(series_list, args.alignment_period, title))


@command('read-reduce')
async def read_reduce(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    series_list = [
        s
        async for s in service.read_reduce(
            args.filter,
            alignment_period=args.alignment_period,
            aligner=args.aligner,
            reducer=args.reducer,
        )
    ]
    title = _title(args, 'Average CPU utilization across all GCE instances:')
    emit(formatter.format_reduction(series_list, args.alignment_period, title))


@command('list-resources')
async def list_resources(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    descriptors = [d async for d in service.list_resources()]
    emit(formatter.format_resource_descriptors(descriptors))


@command('get-resource')
async def get_resource(
    service: MonitoringService,
    formatter: ConsoleFormatter,
    args: argparse.Namespace,
    emit: Emit,
) -> None:
    descriptor = await service.get_resource(args.resource_type)
    emit(formatter.format_resource_descriptor(descriptor))


def _add_filter(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--filter',
        default=CPU_UTILIZATION_FILTER,
        help='Time series filter (default: %(default)s)',
    )


def _add_alignment(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--alignment-period',
        type=duration,
        default=DEFAULT_ALIGNMENT_PERIOD,
        help='Alignment period, e.g. 600s, 10m or 1h (default: 600s)',
    )
    parser.add_argument(
        '--aligner',
        type=Aligner,
        choices=list(Aligner),
        default=Aligner.ALIGN_MEAN,
        metavar='ALIGNER',
        help='Per-series aligner (default: ALIGN_MEAN)',
    )


def build_parser(default_project_id: str | None = None) -> argparse.ArgumentParser:
    # -p is accepted before or after the command; SUPPRESS keeps the
    # subcommand from overwriting the top-level value.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('-p', '--project-id', default=argparse.SUPPRESS)

    parser = argparse.ArgumentParser(
        prog='monitor',
        description='Basic operations on metrics with the Cloud Monitoring API.',
        epilog='For more information, see https://cloud.google.com/monitoring/docs',
    )
    parser.add_argument(
        '-p',
        '--project-id',
        default=default_project_id,
        help='Project ID (default: $GCLOUD_PROJECT)',
    )
    subparsers = parser.add_subparsers(
        dest='command', required=True, metavar='COMMAND'
    )

    def add(name: str, help_text: str, *positionals: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        for positional in positionals:
            sub.add_argument(positional)
        sub.add_argument('project', nargs='?', metavar='PROJECT_ID')
        return sub

    create = add(
        'create',
        f"Creates an example '{DAILY_SALES_METRIC_TYPE}' custom metric descriptor.",
    )
    create.add_argument('--metric-type', default=DAILY_SALES_METRIC_TYPE)

    add('list', 'Lists metric descriptors.')
    add('get', 'Get a metric descriptor.', 'metric_id')
    add('delete', 'Deletes a custom metric descriptor.', 'metric_id')

    write = add(
        'write', f"Writes example time series data to '{DAILY_SALES_METRIC_TYPE}'."
    )
    write.add_argument('--metric-type', default=DAILY_SALES_METRIC_TYPE)
    write.add_argument('--value', type=point_value, default=DEFAULT_SALES_VALUE)
    write.add_argument(
        '--label',
        dest='labels',
        type=label_pair,
        action='append',
        metavar='KEY=VALUE',
        help='Metric label; repeatable (default: store_id=Pittsburgh)',
    )

    add('read', 'Reads time series data that matches the given filter.', 'filter')

    read_fields_parser = add(
        'read-fields', 'Reads headers of time series data that matches the filter.'
    )
    _add_filter(read_fields_parser)

    read_aggregate_parser = add(
        'read-aggregate', 'Aggregates time series data that matches the filter.'
    )
    _add_filter(read_aggregate_parser)
    _add_alignment(read_aggregate_parser)

    read_reduce_parser = add(
        'read-reduce', 'Reduces time series data that matches the filter.'
    )
    _add_filter(read_reduce_parser)
    _add_alignment(read_reduce_parser)
    read_reduce_parser.add_argument(
        '--reducer',
        type=Reducer,
        choices=list(Reducer),
        default=Reducer.REDUCE_MEAN,
        metavar='REDUCER',
        help='Cross-series reducer (default: REDUCE_MEAN)',
    )

    add('list-resources', 'Lists monitored resource descriptors.')
    add('get-resource', 'Get a monitored resource descriptor.', 'resource_type')

    return parser


def resolve_project_id(args: argparse.Namespace) -> str | None:
    return getattr(args, 'project', None) or args.project_id
