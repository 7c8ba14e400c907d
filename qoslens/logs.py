"""
Logging helpers: per-run scrape logger and CLI logging setup
"""

import io
import logging
from datetime import datetime, timezone

from rich.logging import RichHandler


def _logfmt_value(value) -> str:
    text = str(value)
    if text == '' or any(c in text for c in ' ="\n\t'):
        text = '"' + text.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n') + '"'
    return text


def logfmt(pairs: list[tuple[str, object]]) -> str:
    """Render key/value pairs as a logfmt line"""
    return ' '.join(f"{key}={_logfmt_value(value)}" for key, value in pairs)


class ScrapeLogger:
    """
    Logger handed to a probe for one run.

    Every call is written as a logfmt line into an in-memory buffer that
    ends up in the run's history trace, and forwarded to the process
    logger at DEBUG so probe chatter never floods normal output.

        sl = ScrapeLogger(logger, "icmp_qos", "10.0.0.1")
        sl.info("Beginning probe", probe="icmp_qos", timeout_seconds=5)
    """

    def __init__(self, next_logger: logging.Logger, module: str, target: str):
        self.next = next_logger
        self.module = module
        self.target = target
        self.buffer = io.StringIO()

    def log(self, level: str, msg: str, **kwargs):
        pairs = [
            ('ts', datetime.now(timezone.utc).isoformat(timespec='milliseconds')),
            ('level', level),
            ('module', self.module),
            ('target', self.target),
            ('msg', msg),
        ]
        pairs.extend(kwargs.items())
        self.buffer.write(logfmt(pairs) + '\n')
        self.next.debug(logfmt(pairs[2:]))

    def debug(self, msg: str, **kwargs):
        self.log('debug', msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self.log('info', msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self.log('warn', msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self.log('error', msg, **kwargs)

    def getvalue(self) -> str:
        return self.buffer.getvalue()


def setup_logging(level: str = 'info', console=None) -> logging.Logger:
    """Install a rich handler on the package logger"""
    root = logging.getLogger('qoslens')
    root.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter('%(message)s'))
        root.addHandler(handler)
    return root
