import argparse
from datetime import UTC, datetime
import io

from google.api import metric_pb2
from google.api_core import exceptions as api_exceptions
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import monitoring_v3
import pytest

from monitor import backend as backend_module
from monitor import main as main_module
from monitor.commands import (
    COMMANDS,
    build_parser,
    label_pair,
    point_value,
    resolve_project_id,
)
from monitor.config import Settings
from monitor.main import EXIT_BACKEND_ERROR, EXIT_INVALID_ARGUMENT, EXIT_OK, run
from monitor.schemas import Aligner, Reducer
from monitor.services.monitoring import CPU_UTILIZATION_FILTER, DAILY_SALES_METRIC_TYPE


async def _run(argv, backend):
    args = build_parser().parse_args(argv)
    stdout, stderr = io.StringIO(), io.StringIO()
    code = await run(args, backend=backend, stdout=stdout, stderr=stderr)
    return code, stdout.getvalue(), stderr.getvalue()


def test_every_command_is_registered():
    assert set(COMMANDS) == {
        'create',
        'list',
        'get',
        'delete',
        'write',
        'read',
        'read-fields',
        'read-aggregate',
        'read-reduce',
        'list-resources',
        'get-resource',
    }


class TestParser:
    def test_project_before_command(self):
        args = build_parser().parse_args(['-p', 'alpha', 'list'])

        assert resolve_project_id(args) == 'alpha'

    def test_project_after_command(self):
        args = build_parser().parse_args(['list', '-p', 'beta'])

        assert resolve_project_id(args) == 'beta'

    def test_positional_project_wins(self):
        args = build_parser().parse_args(
            ['-p', 'alpha', 'get', 'custom.x.com/y', 'gamma']
        )

        assert args.metric_id == 'custom.x.com/y'
        assert resolve_project_id(args) == 'gamma'

    def test_default_project(self):
        args = build_parser(default_project_id='from-env').parse_args(['list'])

        assert resolve_project_id(args) == 'from-env'

    def test_missing_project(self):
        args = build_parser().parse_args(['list'])

        assert resolve_project_id(args) is None

    def test_read_reduce_options(self):
        args = build_parser().parse_args(
            [
                'read-reduce',
                '--alignment-period',
                '1h',
                '--aligner',
                'ALIGN_MAX',
                '--reducer',
                'REDUCE_SUM',
            ]
        )

        assert args.alignment_period == 3600
        assert args.aligner is Aligner.ALIGN_MAX
        assert args.reducer is Reducer.REDUCE_SUM
        assert args.filter == CPU_UTILIZATION_FILTER

    def test_bad_duration_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(['read-aggregate', '--alignment-period', 'soon'])

        assert exc_info.value.code == 2

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.parametrize(
    ('text', 'expected'),
    [('true', True), ('False', False), ('3', 3), ('1.5', 1.5), ('open', 'open')],
)
def test_point_value(text, expected):
    value = point_value(text)

    assert value == expected
    assert type(value) is type(expected)


def test_label_pair():
    assert label_pair('store_id=Boston') == ('store_id', 'Boston')
    assert label_pair('note=a=b') == ('note', 'a=b')
    with pytest.raises(argparse.ArgumentTypeError):
        label_pair('store_id')


async def test_list_command(backend, fake_client):
    fake_client.descriptors = [
        metric_pb2.MetricDescriptor(
            name='projects/my-project/metricDescriptors/' + DAILY_SALES_METRIC_TYPE,
            type=DAILY_SALES_METRIC_TYPE,
        )
    ]

    code, out, err = await _run(['-p', 'my-project', 'list'], backend)

    assert code == EXIT_OK
    assert out.splitlines() == [
        'Metric Descriptors:',
        'projects/my-project/metricDescriptors/' + DAILY_SALES_METRIC_TYPE,
    ]
    assert err == ''


async def test_create_command(backend, fake_client):
    code, out, _ = await _run(['-p', 'my-project', 'create'], backend)

    assert code == EXIT_OK
    assert out.startswith('Created custom Metric:\n')
    assert len(fake_client.requests('create_metric_descriptor')) == 1


async def test_write_command(backend, fake_client):
    code, out, _ = await _run(
        ['-p', 'my-project', 'write', '--value', '42', '--label', 'store_id=Boston'],
        backend,
    )

    assert code == EXIT_OK
    assert out.startswith('Done writing time series data.')
    [sent] = fake_client.requests('create_time_series')
    assert sent.time_series[0].points[0].value.int64_value == 42
    assert dict(sent.time_series[0].metric.labels) == {'store_id': 'Boston'}


async def test_read_aggregate_command(backend, fake_client):
    fake_client.series = [
        monitoring_v3.TimeSeries(
            metric=metric_pb2.Metric(
                type='compute.googleapis.com/instance/cpu/utilization',
                labels={'instance_name': 'web-1'},
            ),
            points=[
                monitoring_v3.Point(
                    interval=monitoring_v3.TimeInterval(
                        end_time=datetime(2024, 1, 1, tzinfo=UTC)
                    ),
                    value=monitoring_v3.TypedValue(double_value=0.5),
                )
            ],
        )
    ]

    code, out, _ = await _run(
        ['-p', 'my-project', 'read-aggregate', '--alignment-period', '5m'], backend
    )

    assert code == EXIT_OK
    assert out.splitlines() == [
        'CPU utilization:',
        'web-1',
        '  Now: 0.5',
        '  5 min ago: n/a',
    ]


async def test_read_reduce_without_data(backend):
    code, out, _ = await _run(['-p', 'my-project', 'read-reduce'], backend)

    assert code == EXIT_OK
    assert out == 'No data\n'


async def test_invalid_argument_exit_code(backend, fake_client):
    code, out, err = await _run(
        [
            '-p',
            'my-project',
            'delete',
            'compute.googleapis.com/instance/cpu/utilization',
        ],
        backend,
    )

    assert code == EXIT_INVALID_ARGUMENT
    assert out == ''
    assert 'user-defined' in err
    assert fake_client.calls == []


async def test_invalid_project_exit_code(backend):
    code, _, err = await _run(['-p', 'bad/project', 'list'], backend)

    assert code == EXIT_INVALID_ARGUMENT
    assert 'project' in err


async def test_backend_error_exit_code(backend, fake_client):
    fake_client.error = api_exceptions.NotFound('no such metric')

    code, out, err = await _run(
        ['-p', 'my-project', 'get', DAILY_SALES_METRIC_TYPE], backend
    )

    assert code == EXIT_BACKEND_ERROR
    assert out == ''
    assert err.startswith('Error: ')
    assert 'no such metric' in err


def test_main_without_project_exits(monkeypatch):
    monkeypatch.setattr(main_module, 'settings', Settings(GCLOUD_PROJECT=None))
    monkeypatch.setattr(main_module, 'setup_logging', lambda **kwargs: None)

    with pytest.raises(SystemExit) as exc_info:
        main_module.main(['list'])

    assert exc_info.value.code == 2


@pytest.fixture
def no_credentials(monkeypatch):
    def missing_credentials():
        raise DefaultCredentialsError('Your default credentials were not found.')

    monkeypatch.setattr(
        backend_module.monitoring_v3, 'MetricServiceAsyncClient', missing_credentials
    )


async def _run_without_backend(argv):
    args = build_parser().parse_args(argv)
    stdout, stderr = io.StringIO(), io.StringIO()
    code = await run(args, stdout=stdout, stderr=stderr)
    return code, stdout.getvalue(), stderr.getvalue()


@pytest.mark.parametrize(
    'argv, message',
    [
        (['delete', 'compute.googleapis.com/instance/cpu/utilization'], 'user-defined'),
        (['read', '  '], 'filter'),
        (['get-resource', 'bad type!'], 'resource'),
        (['write', '--value', '99999999999999999999'], 'int64_value'),
    ],
)
async def test_local_rejection_precedes_credentials(no_credentials, argv, message):
    code, out, err = await _run_without_backend(['-p', 'my-project', *argv])

    assert code == EXIT_INVALID_ARGUMENT
    assert out == ''
    assert err.startswith('Invalid argument: ')
    assert message in err


async def test_missing_credentials_on_dispatch(no_credentials):
    code, out, err = await _run_without_backend(
        ['-p', 'my-project', 'get', DAILY_SALES_METRIC_TYPE]
    )

    assert code == EXIT_BACKEND_ERROR
    assert out == ''
    assert err.startswith('Error: ')
    assert 'credentials' in err


async def test_out_of_range_value_never_dispatched(backend, fake_client):
    code, _, err = await _run(
        ['-p', 'my-project', 'write', '--value', '99999999999999999999'], backend
    )

    assert code == EXIT_INVALID_ARGUMENT
    assert 'less than or equal' in err
    assert fake_client.calls == []
