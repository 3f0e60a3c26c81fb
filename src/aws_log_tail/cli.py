"""Main CLI entry point"""

import asyncio
import signal
from contextlib import suppress
from typing import Optional, Tuple

import click
from botocore.exceptions import BotoCoreError

from .config import ConfigManager, DEFAULT_CONFIG_PATH
from .core.exceptions import LogTailError
from .core.logging_config import setup_logging
from .logs import FetchWindow, LogAggregator
from .logs.formatter import MessageFormatter
from .logs.providers import CloudWatchLogSource
from .utils import OutputFormatter, TIMESTAMP, TIMESTAMP_HELP, format_liveness

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def run_pipeline(coro):
    """Run ``coro`` on a fresh event loop; SIGINT and SIGTERM cancel it."""
    async def main():
        task = asyncio.create_task(coro)
        loop = asyncio.get_event_loop()
        installed = []
        for sig in STOP_SIGNALS:
            # Only possible from the main thread on a Unix loop
            with suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(sig, task.cancel)
                installed.append(sig)
        try:
            return await task
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    return asyncio.run(main())


def check_flags(follow: bool, lines: Optional[int], since, until):
    """Reject flag combinations the fetch windows cannot express"""
    if follow and (since is not None or until is not None):
        raise click.UsageError("-f/--follow conflicts with -t/--since and -T/--until")
    if lines is not None and until is not None:
        raise click.UsageError("-n/--lines conflicts with -T/--until")
    if since is not None and until is not None and since >= until:
        raise click.UsageError("-t/--since must be earlier than -T/--until")


@click.command()
@click.option('--config', '-c', type=click.Path(dir_okay=False),
              default=str(DEFAULT_CONFIG_PATH), envvar='AWS_LOG_TAIL_CONFIG',
              help='Config file location')
@click.option('--region', help='AWS region name')
@click.option('--profile', help='AWS config profile')
@click.option('--log-group', '-g', help='Log group to read (default: /var/log/messages)')
@click.option('--follow', '-f', is_flag=True,
              help='Output appended data as the logs grow (conflicts with -t and -T)')
@click.option('--lines', '-n', type=click.IntRange(min=1),
              help='Number of lines to output (conflicts with -T)')
@click.option('--since', '-t', type=TIMESTAMP,
              help=f'Load messages since {TIMESTAMP_HELP} (conflicts with -f)')
@click.option('--until', '-T', type=TIMESTAMP,
              help=f'Load messages until {TIMESTAMP_HELP} (conflicts with -n and -f)')
@click.option('--list-streams', is_flag=True, help='List the streams that would be read and exit')
@click.option('--output', '-o', type=click.Choice(['table', 'json', 'yaml']),
              default='table', help='Output format for --list-streams')
@click.option('--save-config', is_flag=True,
              help='Store --region, --profile and --log-group in the config file')
@click.option('--verbose', '-v', is_flag=True, help='Debug diagnostics on stderr')
@click.argument('prefixes', nargs=-1)
@click.pass_context
def cli(ctx, config, region, profile, log_group, follow, lines, since, until,
        list_streams, output, save_config, verbose, prefixes: Tuple[str, ...]):
    """Merge and tail the CloudWatch logs of EC2 instances.

    PREFIXES restrict the instances to those whose Name tag starts with one
    of them.
    """
    check_flags(follow, lines, since, until)
    setup_logging(verbose)

    config_manager = ConfigManager(config)
    cfg = config_manager.load()

    # Flags override the config file
    if region:
        cfg.region = region
    if profile:
        cfg.profile = profile
    if log_group:
        cfg.log_group = log_group

    if save_config:
        config_manager.save(cfg)
        click.echo(f"Saved configuration to {config_manager.config_path}", err=True)

    try:
        window = FetchWindow.from_options(start=since, end=until, limit=lines or cfg.limit)
    except ValueError as e:
        raise click.UsageError(str(e))

    try:
        source = CloudWatchLogSource.from_profile(region=cfg.region, profile=cfg.profile)
        aggregator = LogAggregator(
            source,
            cfg.log_group,
            window,
            follow=follow,
            poll_interval=cfg.poll_interval,
            formatter=MessageFormatter(cfg.zone())
        )

        if list_streams:
            descriptors = run_pipeline(aggregator.list_streams(prefixes))
            if output == 'table':
                rows = [{'stream': d.id, 'live': format_liveness(d.is_live)} for d in descriptors]
            else:
                rows = [{'stream': d.id, 'live': d.is_live} for d in descriptors]
            click.echo(OutputFormatter(output).format(rows, headers=['STREAM', 'LIVE'], fields=['stream', 'live']))
        else:
            run_pipeline(aggregator.run(prefixes))

    except LogTailError as e:
        click.echo(f"Error: {e.message}", err=True)
        ctx.exit(e.exit_code)
    except BotoCoreError as e:
        # Profile and region problems surface while building the session
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        ctx.exit(0)
    except BrokenPipeError:
        # Output closed early, e.g. piped into head
        ctx.exit(0)


if __name__ == '__main__':
    cli()
