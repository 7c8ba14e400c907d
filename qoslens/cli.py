import os
import sys
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .config import SafeConfig, default_config
from .exceptions import QoSLensError
from .history import ResultHistory
from .logs import setup_logging
from .models import BasicAuth, HTTPOverrides, ICMPQoSOverrides, ProbeOverrides
from .orchestrator import ProbeOrchestrator
from .output import ConsoleOutput


console = Console()


def is_admin() -> bool:
    """Check if running with elevated privileges (admin on Windows, root on Linux)"""
    if sys.platform == 'win32':
        try:
            import ctypes
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


def build_overrides(timeout: float, count: Optional[int], size: Optional[int],
                    interval: Optional[int], method: Optional[str], headers: tuple[str, ...],
                    body: Optional[str], user: Optional[str],
                    password: Optional[str]) -> ProbeOverrides:
    """Map CLI options onto request overrides; untouched groups stay None"""
    overrides = ProbeOverrides(timeout=timeout)

    if any(v is not None for v in (count, size, interval)):
        overrides.icmp_qos = ICMPQoSOverrides(packet_size=size, count=count, interval=interval)

    if method is not None or headers or body is not None or user is not None:
        parsed = {}
        for header in headers:
            name, sep, value = header.partition(':')
            if not sep:
                raise click.BadParameter(f"expected 'Name: value', got {header!r}",
                                         param_hint="'-H' / '--header'")
            parsed[name.strip()] = value.strip()
        overrides.http = HTTPOverrides(
            headers=parsed,
            method=method or '',
            body=body or '',
            basic_auth=BasicAuth(user or '', password or '') if user else None
        )

    return overrides


@click.command()
@click.argument('target')
@click.option('-m', '--module', 'module_name', default='icmp_qos',
              help='Module to run (default: icmp_qos)')
@click.option('-c', '--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML module configuration (default: built-in modules)')
@click.option('-w', '--timeout', default=0.0, type=float,
              help='Run timeout in seconds; 0 uses the module timeout')
@click.option('--count', type=click.IntRange(min=1), help='ICMP QoS packet count')
@click.option('--size', type=click.IntRange(min=0), help='ICMP QoS packet size in bytes')
@click.option('--interval', type=click.IntRange(min=0), help='ICMP QoS interval in milliseconds')
@click.option('-X', '--method', help='HTTP method')
@click.option('-H', '--header', 'headers', multiple=True, help="HTTP header 'Name: value' (repeatable)")
@click.option('--body', help='HTTP request body')
@click.option('--user', help='HTTP basic auth username')
@click.option('--password', help='HTTP basic auth password')
@click.option('-f', '--format', 'fmt', default='table',
              type=click.Choice(['table', 'text', 'json'], case_sensitive=False),
              help='Output format (default: table)')
@click.option('--debug', is_flag=True, help='Print the recorded run trace')
@click.option('--log-level', default='warning',
              type=click.Choice(['debug', 'info', 'warning', 'error'], case_sensitive=False),
              help='Process log level (default: warning)')
@click.version_option(version=__version__)
def main(target: str, module_name: str, config_path: Optional[str], timeout: float,
         count: Optional[int], size: Optional[int], interval: Optional[int],
         method: Optional[str], headers: tuple[str, ...], body: Optional[str],
         user: Optional[str], password: Optional[str], fmt: str, debug: bool,
         log_level: str):
    """
    qoslens - network quality probes.

    Run MODULE against TARGET once and print the resulting metrics.

    Examples:

        qoslens 8.8.8.8 --count 10 --interval 200

        qoslens example.com:443 -m tcp

        qoslens https://example.com -m http -f text
    """
    setup_logging(log_level, console=Console(stderr=True))
    output = ConsoleOutput(console)

    store = SafeConfig(default_config())
    try:
        if config_path:
            store.reload_config(config_path)
    except QoSLensError as e:
        output.print_error(str(e))
        sys.exit(1)

    overrides = build_overrides(timeout, count, size, interval, method, headers,
                                body, user, password)
    history = ResultHistory(max_results=1)
    orchestrator = ProbeOrchestrator(store, history=history)

    try:
        module = orchestrator.resolver.resolve(module_name, overrides)
        if module.prober in ('icmp', 'icmp_qos') and not is_admin():
            output.print_warning("ICMP probes need root privileges (or CAP_NET_RAW).")
        if fmt == 'table':
            output.print_header(target, module_name, module.prober,
                                orchestrator.effective_timeout(module, overrides))

        snapshot = orchestrator.call(target, module_name, overrides)
    except QoSLensError as e:
        output.print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/]")
        sys.exit(130)

    if fmt == 'text':
        click.echo(snapshot.text().decode('utf-8'), nl=False)
    elif fmt == 'json':
        click.echo(snapshot.json().decode('utf-8'))
    else:
        output.print_snapshot(snapshot)

    if debug:
        for entry in history.recent(1):
            output.print_trace(entry)

    sys.exit(0 if snapshot.success else 2)


if __name__ == '__main__':
    main()
