"""
Module configuration: YAML loading, the shared store, and per-request resolution
"""

import copy
import dataclasses
import logging
import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

import yaml

from .exceptions import ConfigError, UnknownModuleError
from .models import (
    PROBE_KINDS, DEFAULT_ICMP_QOS, BasicAuth, Config, DNSParameters, HTTPParameters,
    ICMPParameters, ICMPQoSParameters, Module, ProbeOverrides, TCPParameters
)


logger = logging.getLogger(__name__)

PARAMETER_BLOCKS = {
    'http': HTTPParameters,
    'tcp': TCPParameters,
    'icmp': ICMPParameters,
    'icmp_qos': ICMPQoSParameters,
    'dns': DNSParameters,
}

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, None: 1.0}


class RWLock:
    """Readers proceed together; a writer waits for them and excludes everyone"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._writer = True
            while self._readers:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def parse_duration(value: Union[int, float, str]) -> float:
    """Seconds from a number or a '10s' / '500ms' / '1m' string"""
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigError(f"invalid duration {value!r}")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def _build_block(kind: str, raw) -> object:
    cls = PARAMETER_BLOCKS[kind]
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"{kind}: expected a mapping, got {type(raw).__name__}")

    names = {f.name for f in dataclasses.fields(cls)}
    unknown = set(raw) - names
    if unknown:
        raise ConfigError(f"{kind}: unknown field(s) {', '.join(sorted(unknown))}")

    values = dict(raw)
    try:
        if kind == 'http':
            if values.get('basic_auth') is not None:
                values['basic_auth'] = BasicAuth(**values['basic_auth'])
            if 'headers' in values:
                values['headers'] = {str(k): str(v) for k, v in (values['headers'] or {}).items()}
            if 'valid_status_codes' in values:
                values['valid_status_codes'] = tuple(values['valid_status_codes'] or ())
        if kind == 'dns' and 'valid_rcodes' in values:
            values['valid_rcodes'] = tuple(values['valid_rcodes'] or ())
        return cls(**values)
    except (TypeError, AttributeError) as e:
        raise ConfigError(f"{kind}: {e}")


def parse_module(name: str, raw: dict) -> Module:
    """Build a Module, filling the parameter block of its kind with defaults"""
    if not isinstance(raw, dict):
        raise ConfigError(f"module {name!r}: expected a mapping")
    prober = raw.get('prober')
    if prober not in PROBE_KINDS:
        raise ConfigError(f"module {name!r}: unknown prober kind {prober!r}")

    unknown = set(raw) - {'prober', 'timeout'} - set(PARAMETER_BLOCKS)
    if unknown:
        raise ConfigError(f"module {name!r}: unknown field(s) {', '.join(sorted(unknown))}")

    blocks = {}
    for kind in PARAMETER_BLOCKS:
        if kind in raw or kind == prober:
            try:
                blocks[kind] = _build_block(kind, raw.get(kind))
            except ConfigError as e:
                raise ConfigError(f"module {name!r}: {e}")

    timeout = parse_duration(raw.get('timeout', Module.timeout))
    if timeout <= 0:
        raise ConfigError(f"module {name!r}: timeout must be positive")
    return Module(prober=prober, timeout=timeout, **blocks)


def load_config(data: dict) -> Config:
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")
    modules = data.get('modules') or {}
    if not isinstance(modules, dict):
        raise ConfigError("'modules' must be a mapping")
    return Config(modules={name: parse_module(name, raw) for name, raw in modules.items()})


def default_config() -> Config:
    """One module per probe kind, all with default parameters"""
    return load_config({
        'modules': {kind: {'prober': kind} for kind in PROBE_KINDS if kind != 'grpc'}
    })


class SafeConfig:
    """
    Configuration store shared by concurrent runs.

    ``swap`` and ``reload_config`` replace the whole generation under the
    write lock; readers always see a complete one.
    """

    def __init__(self, config: Optional[Config] = None):
        self._config = config or Config()
        self.lock = RWLock()

    @property
    def config(self) -> Config:
        """Deep copy of the current generation"""
        with self.lock.read():
            return copy.deepcopy(self._config)

    def copy_module(self, name: str) -> Optional[Module]:
        """Deep copy of a stored module, taken under the read lock"""
        with self.lock.read():
            module = self._config.modules.get(name)
            return copy.deepcopy(module) if module is not None else None

    def swap(self, config: Config):
        with self.lock.write():
            self._config = config

    def reload_config(self, path: Union[str, Path]):
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding='utf-8'))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"error reading config file {path}: {e}")
        config = load_config(data or {})
        self.swap(config)
        logger.info("Loaded config file %s (%d modules)", path, len(config.modules))


class ConfigResolver:
    """
    Produces the effective module for one run.

    Overwrite rules, applied to a private copy of the stored module:
    - http: basic auth is replaced only when both username and password are
      given; headers, method and body are always overwritten, so an empty
      request value blanks the configured one.
    - icmp_qos: packet size, count and interval come from the request where
      given; timeout and TTL reset to the package defaults.
    """

    def __init__(self, store: SafeConfig):
        self.store = store

    def resolve(self, module_name: str, overrides: Optional[ProbeOverrides] = None) -> Module:
        module = self.store.copy_module(module_name)
        if module is None:
            raise UnknownModuleError(module_name)

        if overrides is None:
            return module

        if overrides.http is not None:
            req = overrides.http
            http = module.http or HTTPParameters()
            auth = http.basic_auth
            if req.basic_auth and req.basic_auth.username and req.basic_auth.password:
                auth = BasicAuth(req.basic_auth.username, req.basic_auth.password)
            http = dataclasses.replace(
                http,
                basic_auth=auth,
                headers=dict(req.headers or {}),
                method=req.method,
                body=req.body
            )
            module = dataclasses.replace(module, http=http)

        if overrides.icmp_qos is not None:
            req = overrides.icmp_qos
            current = module.icmp_qos or DEFAULT_ICMP_QOS
            module = dataclasses.replace(module, icmp_qos=ICMPQoSParameters(
                packet_size=current.packet_size if req.packet_size is None else req.packet_size,
                count=current.count if req.count is None else req.count,
                interval=current.interval if req.interval is None else req.interval,
                timeout=DEFAULT_ICMP_QOS.timeout,
                ttl=DEFAULT_ICMP_QOS.ttl
            ))

        return module
