"""
natstop entry point.

Usage:
    natstop                               Dashboard for 127.0.0.1:8222
    natstop -s nats.internal -d 2         Other host, poll every 2s
    natstop -o - -l ,                     One snapshot as CSV on stdout
    natstop --format jsonl -r 10          Ten JSON lines, then exit
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from natstop import __version__
from natstop.collector.base import FetchError
from natstop.collector.nats_collector import NatsMonitorClient
from natstop.config import SORT_OPTIONS, STDOUT_SENTINEL, TopConfig
from natstop.dashboard.terminal import run_dashboard, run_jsonl
from natstop.dashboard.text import generate_delimited, generate_plain_text
from natstop.engine.scheduler import StatsScheduler
from natstop.engine.stats_engine import StatsEngine


log = logging.getLogger("natstop")


def _validate_delimiter(ctx, param, value: Optional[str]) -> Optional[str]:
    if value and len(value) != 1:
        raise click.BadParameter("must be a single character")
    return value


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="natstop")
@click.option("-s", "--server", "host", default="127.0.0.1", show_default=True,
              help="NATS server host")
@click.option("-m", "--port", default=8222, show_default=True, help="HTTP monitoring port")
@click.option("--https-port", default=0, help="HTTPS monitoring port (enables TLS when set)")
@click.option("-n", "--conns", default=1024, show_default=True, type=click.IntRange(min=1),
              help="Maximum number of connections to poll")
@click.option("-d", "--delay", default=1, show_default=True, type=click.IntRange(min=1),
              help="Refresh interval in seconds")
@click.option("--sort", "sort_by", default="cid", show_default=True, type=click.Choice(SORT_OPTIONS),
              help="Connection sort key")
@click.option("--lookup", is_flag=True, default=False, help="Resolve client hosts via DNS")
@click.option("-o", "--output", "output_file", default="",
              help="Write one snapshot to this file and exit ('-' for stdout)")
@click.option("-l", "--delimiter", default="", callback=_validate_delimiter,
              help="Delimited output for --output (e.g. ',')")
@click.option("-b", "--bytes", "raw_bytes", is_flag=True, default=False,
              help="Show raw byte and message counts")
@click.option("-r", "--max-refresh", "max_refreshes", default=None, type=click.IntRange(min=1),
              help="Exit after this many refreshes")
@click.option("-u", "--display-subscriptions-column", "display_subs", is_flag=True, default=False,
              help="Request and show each connection's subscriptions")
@click.option("--format", "output_format", type=click.Choice(["tui", "jsonl"]), default="tui",
              help="Continuous output: tui (Rich dashboard) or jsonl (one JSON line per poll)")
@click.option("--cert", default="", help="Client certificate file")
@click.option("--key", default="", help="Client private key file")
@click.option("--cacert", default="", help="CA certificate file")
@click.option("-k", "--skip-verify", is_flag=True, default=False, help="Skip TLS certificate verification")
@click.option("--timeout", "timeout_seconds", default=5.0, show_default=True,
              help="HTTP request timeout in seconds")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
def cli(host: str, port: int, https_port: int, conns: int, delay: int, sort_by: str, lookup: bool,
        output_file: str, delimiter: str, raw_bytes: bool, max_refreshes: Optional[int],
        display_subs: bool, output_format: str, cert: str, key: str, cacert: str,
        skip_verify: bool, timeout_seconds: float, verbose: bool):
    """natstop - top-like monitor for a NATS server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config = TopConfig(
        host=host,
        port=port,
        https_port=https_port,
        conns=conns,
        delay=delay,
        sort=sort_by,
        lookup_dns=lookup,
        output_file=output_file,
        delimiter=delimiter,
        raw_bytes=raw_bytes,
        max_refreshes=max_refreshes,
        display_subs=display_subs,
        output_format=output_format,
        cert=cert,
        key=key,
        cacert=cacert,
        skip_verify=skip_verify,
        timeout_seconds=timeout_seconds,
    )
    raise SystemExit(run(config))


def run(config: TopConfig) -> int:
    """Wire up client, engine and scheduler for one invocation. Returns the exit status."""
    try:
        client = NatsMonitorClient.from_config(config)
    except (OSError, ValueError) as e:
        # Unreadable or mismatched TLS files
        click.echo(f"natstop: TLS setup failed: {e}", err=True)
        return 1

    try:
        # Without a reachable server there is nothing to monitor
        try:
            client.fetch_varz()
        except FetchError as e:
            log.debug("Smoke test against %s failed", config.base_url)
            click.echo(f"natstop: /varz smoke test failed: {e}", err=True)
            return 1

        display = config.display_options()
        engine = StatsEngine(client, conns=config.conns, sort=config.sort, display=display)
        scheduler = StatsScheduler(engine, delay=config.delay)

        try:
            if config.one_shot:
                stats = scheduler.run_once()
                if config.delimiter:
                    text = generate_delimited(stats, display, config.delimiter)
                else:
                    text = generate_plain_text(stats, display)

                if config.output_file == STDOUT_SENTINEL:
                    click.echo(text, nl=False)
                else:
                    Path(config.output_file).write_text(text)
                    log.info("Wrote snapshot to %s", config.output_file)
                return 1 if stats.error else 0

            if config.output_format == "jsonl":
                run_jsonl(scheduler, max_refreshes=config.max_refreshes)
            else:
                run_dashboard(scheduler, display, max_refreshes=config.max_refreshes)
            return 0
        finally:
            scheduler.stop()
            engine.close()
    finally:
        client.close()


def main():
    cli(auto_envvar_prefix="NATSTOP")


if __name__ == "__main__":
    main()
