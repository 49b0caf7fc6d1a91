"""
Command-line interface for fifostream using Click.

``fifostream relay`` pushes standard input through a freshly created named
pipe and copies what comes out to standard output. ``fifostream path`` shows
where a pipe would be created for the given options.
"""

import asyncio
import os
import stat
import sys
from typing import AsyncIterator, Optional

import click

from .app_logger import set_default_logger
from .config import PipeConfig, resolve_pipe_path
from .errors import FifoStreamError
from .logging_config import (
    ConfigurableAppLogger,
    FORMAT_NAMES,
    HandlerConfig,
    LogFormat,
    LogHandler,
    LoggingConfig,
    VerbosityLevel,
    parse_handler_names,
)
from .named_pipe import NamedPipe


def _configure_logging(
    verbose: int,
    quiet: bool,
    log_level: Optional[str],
    log_format: str,
    log_file: Optional[str],
    log_handlers: Optional[str],
) -> None:
    """Configure logging based on CLI options."""
    if quiet:
        verbosity = VerbosityLevel.QUIET
    elif verbose == 0:
        verbosity = VerbosityLevel.NORMAL
    elif verbose == 1:
        verbosity = VerbosityLevel.VERBOSE
    else:
        verbosity = VerbosityLevel.VERY_VERBOSE

    config = LoggingConfig(verbosity=verbosity)

    if log_level:
        config.global_level = log_level.upper()

    config.global_format = FORMAT_NAMES.get(log_format, LogFormat.SIMPLE)

    if log_handlers:
        handler_configs = parse_handler_names(log_handlers, log_file)
        if handler_configs:
            config.handlers = handler_configs
    elif log_file:
        config.handlers = [
            HandlerConfig(type=LogHandler.CONSOLE),
            HandlerConfig(type=LogHandler.ROTATING_FILE, filename=log_file),
        ]

    set_default_logger(ConfigurableAppLogger(config))


def version_callback(ctx, _, value):
    """Callback for the version option that prints the version and exits."""
    if not value or ctx.resilient_parsing:
        return
    from . import __version__

    click.echo(f"fifostream version {__version__}")
    ctx.exit()


def pipe_options(func):
    """Options shared by commands that resolve a pipe path."""
    func = click.option(
        "--name", "pipe_name", help="Pipe file name (default: random pipe_XXXXXXXXX)"
    )(func)
    func = click.option(
        "--tmp-dir",
        "temp_directory",
        type=click.Path(file_okay=False),
        help="Directory for generated pipe paths (default: ./tmp)",
    )(func)
    func = click.option(
        "--path",
        "explicit_path",
        type=click.Path(dir_okay=False),
        help="Fixed pipe location (overrides --tmp-dir and --name)",
    )(func)
    return func


@click.group()
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (use -v, -vv for more verbose)",
)
@click.option(
    "--quiet", "-q", is_flag=True, help="Reduce output to warnings and errors only"
)
@click.option(
    "--log-level",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False
    ),
    help="Set explicit log level (overrides verbose/quiet)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "simple", "detailed"], case_sensitive=False),
    default="simple",
    help="Log output format",
)
@click.option(
    "--json",
    "json_format",
    is_flag=True,
    help="Use JSON log format (alias for --log-format json)",
)
@click.option(
    "--log-file", type=click.Path(), help="Write logs to file (in addition to console)"
)
@click.option(
    "--log-handlers",
    help="Comma-separated list of log handlers (console,file,syslog,rotating,null)",
)
@click.option(
    "--version",
    is_flag=True,
    expose_value=False,
    is_eager=True,
    callback=version_callback,
    help="Show version and exit",
)
@click.help_option("--help", "-h")
@click.pass_context
def main(
    ctx: click.Context,
    verbose: int,
    quiet: bool,
    log_level: Optional[str],
    log_format: str,
    json_format: bool,
    log_file: Optional[str],
    log_handlers: Optional[str],
) -> None:
    """
    Stream bytes through a named pipe (FIFO).

    Examples:

        echo hello | fifostream relay

        fifostream relay --tmp-dir /tmp/pipes --name p1 < input.bin > output.bin

        fifostream -v --log-format detailed relay --show-path

        fifostream path --tmp-dir /tmp/pipes
    """
    if json_format:
        log_format = "json"

    _configure_logging(verbose, quiet, log_level, log_format, log_file, log_handlers)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _pipe_fileno(stream) -> Optional[int]:
    """Descriptor of a stream the event loop can watch, or None."""
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None
    mode = os.fstat(fd).st_mode
    if stat.S_ISFIFO(mode) or stat.S_ISCHR(mode) or stat.S_ISSOCK(mode):
        return fd
    return None


def _read_stream(stream, chunk_size: int) -> AsyncIterator[bytes]:
    fd = _pipe_fileno(stream)
    if fd is None:
        return _read_blocking(stream, chunk_size)
    return _read_pipe(fd, chunk_size)


async def _read_blocking(stream, chunk_size: int) -> AsyncIterator[bytes]:
    # Regular files and in-memory streams
    read = getattr(stream, "read1", stream.read)
    while True:
        chunk = await asyncio.to_thread(read, chunk_size)
        if not chunk:
            return
        yield chunk


async def _read_pipe(fd: int, chunk_size: int) -> AsyncIterator[bytes]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=chunk_size)
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader),
        os.fdopen(os.dup(fd), "rb", buffering=0),
    )
    try:
        while True:
            chunk = await reader.read(chunk_size)
            if not chunk:
                return
            yield chunk
    finally:
        transport.close()
        # The duplicate shares the file status flags with our stdin
        os.set_blocking(fd, True)


async def _relay(config: PipeConfig, source, sink, show_path: bool) -> int:
    async with NamedPipe(config) as pipe:
        if show_path:
            click.echo(pipe.get(), err=True)

        feeder = asyncio.create_task(
            pipe.feed(_read_stream(source, config.buffer_high_water_mark))
        )
        try:
            delivered = await pipe.pipe_to(sink)
            await feeder
        finally:
            if not feeder.done():
                feeder.cancel()
            await asyncio.gather(feeder, return_exceptions=True)
        sink.flush()
        return delivered


@main.command()
@pipe_options
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    help="Read size and write buffer high-water mark in bytes",
)
@click.option("--show-path", is_flag=True, help="Print the pipe path on stderr")
@click.pass_context
def relay(
    ctx: click.Context,
    explicit_path: Optional[str],
    temp_directory: Optional[str],
    pipe_name: Optional[str],
    chunk_size: Optional[int],
    show_path: bool,
) -> None:
    """Copy standard input to standard output through a named pipe."""
    try:
        config = PipeConfig.from_env(
            explicit_path=explicit_path,
            temp_directory=temp_directory,
            pipe_name=pipe_name,
            buffer_high_water_mark=chunk_size,
        )
        asyncio.run(
            _relay(
                config,
                click.get_binary_stream("stdin"),
                click.get_binary_stream("stdout"),
                show_path,
            )
        )
    except KeyboardInterrupt:
        if ctx.obj and ctx.obj.get("verbose"):
            click.echo("\nReceived interrupt signal, shutting down...", err=True)
        sys.exit(130)
    except (FifoStreamError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        if ctx.obj and ctx.obj.get("verbose"):
            import traceback

            click.echo(traceback.format_exc(), err=True)
        sys.exit(1)


@main.command()
@pipe_options
def path(
    explicit_path: Optional[str],
    temp_directory: Optional[str],
    pipe_name: Optional[str],
) -> None:
    """Print the pipe path the given options resolve to."""
    try:
        config = PipeConfig.from_env(
            explicit_path=explicit_path,
            temp_directory=temp_directory,
            pipe_name=pipe_name,
        )
    except FifoStreamError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(resolve_pipe_path(config))


if __name__ == "__main__":
    main()
