import argparse
import asyncio
from collections.abc import AsyncGenerator, Iterable, Sequence
from contextlib import asynccontextmanager
import logging
import sys
from typing import TextIO

from google.auth.exceptions import GoogleAuthError

from monitor.backend import MonitoringBackend
from monitor.commands import COMMANDS, build_parser, resolve_project_id
from monitor.config import settings
from monitor.exceptions import BackendError, InvalidArgument
from monitor.formatter import ConsoleFormatter
from monitor.log_config_loader import setup_logging
from monitor.query_builder import QueryBuilder
from monitor.services.monitoring import MonitoringService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BACKEND_ERROR = 1
EXIT_INVALID_ARGUMENT = 2


@asynccontextmanager
async def lifespan(backend: MonitoringBackend) -> AsyncGenerator[None, None]:
    # the client is created on first dispatch, so only release is handled here
    try:
        yield
    finally:
        await asyncio.gather(backend.close(), return_exceptions=True)


async def run(
    args: argparse.Namespace,
    backend: MonitoringBackend | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    out = stdout or sys.stdout
    err = stderr or sys.stderr

    def emit(lines: Iterable[str]) -> None:
        for line in lines:
            print(line, file=out)

    try:
        builder = QueryBuilder(
            resolve_project_id(args) or '',
            default_lookback_seconds=settings.DEFAULT_LOOKBACK_SECONDS,
        )
    except InvalidArgument as e:
        print(f'Invalid argument: {e}', file=err)
        return EXIT_INVALID_ARGUMENT

    backend = backend or MonitoringBackend(timeout=settings.REQUEST_TIMEOUT)
    handler = COMMANDS[args.command]
    logger.debug(
        'Running command', extra={'command': args.command, 'scope': builder.scope}
    )

    try:
        async with lifespan(backend):
            service = MonitoringService(builder, backend)
            await handler(service, ConsoleFormatter(), args, emit)
    except InvalidArgument as e:
        logger.debug('Request rejected locally', extra={'error': str(e)})
        print(f'Invalid argument: {e}', file=err)
        return EXIT_INVALID_ARGUMENT
    except (BackendError, GoogleAuthError) as e:
        logger.warning(
            'Backend call failed',
            extra={'command': args.command, 'error_type': type(e).__name__},
        )
        print(f'Error: {e}', file=err)
        return EXIT_BACKEND_ERROR
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser(default_project_id=settings.GCLOUD_PROJECT)
    args = parser.parse_args(argv)

    setup_logging(
        service_name=settings.SERVICE_NAME,
        level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        version=settings.SERVICE_VERSION,
    )

    if not resolve_project_id(args):
        parser.error(
            'a project ID is required: pass -p/--project-id or set GCLOUD_PROJECT'
        )

    sys.exit(asyncio.run(run(args)))


if __name__ == '__main__':
    main()
