import threading

import pytest

from qoslens.config import (
    ConfigResolver, RWLock, SafeConfig, default_config, load_config, parse_duration
)
from qoslens.exceptions import ConfigError, UnknownModuleError
from qoslens.models import (
    DEFAULT_ICMP_QOS, BasicAuth, HTTPOverrides, ICMPQoSOverrides, ProbeOverrides
)


@pytest.mark.parametrize('raw, seconds', [
    (5, 5.0),
    (2.5, 2.5),
    ('10s', 10.0),
    ('500ms', 0.5),
    ('1m', 60.0),
    ('3', 3.0),
])
def test_parse_duration(raw, seconds):
    assert parse_duration(raw) == seconds


@pytest.mark.parametrize('raw', ['soon', '10h', True, '-1s'])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ConfigError):
        parse_duration(raw)


def test_load_config_fills_block_for_kind():
    config = load_config({'modules': {'q': {'prober': 'icmp_qos'}, 't': {'prober': 'tcp'}}})

    assert config.modules['q'].icmp_qos == DEFAULT_ICMP_QOS
    assert config.modules['q'].http is None
    assert config.modules['t'].tcp is not None
    assert config.modules['t'].timeout == 10.0


def test_load_config_rejects_unknown_kind():
    with pytest.raises(ConfigError, match='unknown prober kind'):
        load_config({'modules': {'x': {'prober': 'snmp'}}})


def test_load_config_rejects_unknown_fields():
    with pytest.raises(ConfigError, match='unknown field'):
        load_config({'modules': {'x': {'prober': 'icmp_qos', 'icmp_qos': {'burst': 3}}}})


def test_default_config_has_one_module_per_registered_kind():
    assert set(default_config().modules) == {'http', 'tcp', 'icmp', 'icmp_qos', 'dns'}


def test_reload_config_from_yaml(tmp_path):
    path = tmp_path / 'qoslens.yml'
    path.write_text(
        "modules:\n"
        "  qos:\n"
        "    prober: icmp_qos\n"
        "    timeout: 15s\n"
        "    icmp_qos:\n"
        "      count: 10\n"
        "      interval: 200\n"
    )
    store = SafeConfig()
    store.reload_config(path)

    module = store.config.modules['qos']
    assert module.timeout == 15.0
    assert module.icmp_qos.count == 10
    assert module.icmp_qos.interval == 200
    assert module.icmp_qos.packet_size == DEFAULT_ICMP_QOS.packet_size


def test_reload_config_keeps_previous_generation_on_error(tmp_path, store):
    path = tmp_path / 'broken.yml'
    path.write_text("modules:\n  x:\n    prober: nope\n")

    with pytest.raises(ConfigError):
        store.reload_config(path)
    assert 'icmp_qos' in store.config.modules


def test_resolve_unknown_module(store):
    with pytest.raises(UnknownModuleError):
        ConfigResolver(store).resolve('missing')


def test_resolve_returns_a_copy(store):
    resolver = ConfigResolver(store)
    module = resolver.resolve('http_2xx')
    module.http.headers['X-Token'] = 'tampered'

    assert store.config.modules['http_2xx'].http.headers['X-Token'] == 'abc'
    assert resolver.resolve('http_2xx').http.headers['X-Token'] == 'abc'


def test_empty_header_override_blanks_configured_headers(store):
    overrides = ProbeOverrides(http=HTTPOverrides(headers={}, method='POST', body='ping'))
    module = ConfigResolver(store).resolve('http_2xx', overrides)

    assert module.http.headers == {}


def test_method_and_body_are_overwritten_even_when_empty(store):
    overrides = ProbeOverrides(http=HTTPOverrides(headers={'A': 'b'}))
    module = ConfigResolver(store).resolve('http_2xx', overrides)

    assert module.http.headers == {'A': 'b'}
    assert module.http.method == ''
    assert module.http.body == ''


def test_basic_auth_needs_both_username_and_password(store):
    resolver = ConfigResolver(store)

    partial = ProbeOverrides(http=HTTPOverrides(basic_auth=BasicAuth('bob', '')))
    assert resolver.resolve('http_2xx', partial).http.basic_auth == BasicAuth('admin', 'secret')

    full = ProbeOverrides(http=HTTPOverrides(basic_auth=BasicAuth('bob', 'pw')))
    assert resolver.resolve('http_2xx', full).http.basic_auth == BasicAuth('bob', 'pw')


def test_icmp_qos_override_keeps_timeout_and_ttl_defaults():
    store = SafeConfig(load_config({'modules': {'q': {
        'prober': 'icmp_qos',
        'icmp_qos': {'count': 3, 'timeout': 250, 'ttl': 12},
    }}}))
    overrides = ProbeOverrides(icmp_qos=ICMPQoSOverrides(packet_size=120, count=8, interval=50))
    params = ConfigResolver(store).resolve('q', overrides).icmp_qos

    assert params.packet_size == 120
    assert params.count == 8
    assert params.interval == 50
    assert params.timeout == DEFAULT_ICMP_QOS.timeout
    assert params.ttl == DEFAULT_ICMP_QOS.ttl


def test_icmp_qos_override_leaves_unspecified_fields(store):
    overrides = ProbeOverrides(icmp_qos=ICMPQoSOverrides(count=7))
    params = ConfigResolver(store).resolve('icmp_qos', overrides).icmp_qos

    assert params.count == 7
    assert params.interval == 100
    assert params.packet_size == 56


def test_writer_waits_for_readers():
    lock = RWLock()
    wrote = threading.Event()

    def writer():
        with lock.write():
            wrote.set()

    with lock.read():
        with lock.read():
            t = threading.Thread(target=writer)
            t.start()
            assert not wrote.wait(0.1)
    t.join(1)
    assert wrote.is_set()


def test_swap_is_seen_by_later_resolutions(store):
    resolver = ConfigResolver(store)
    store.swap(load_config({'modules': {'only': {'prober': 'tcp'}}}))

    assert resolver.resolve('only').prober == 'tcp'
    with pytest.raises(UnknownModuleError):
        resolver.resolve('icmp_qos')


def test_copy_module_is_independent_of_store(store):
    first = store.copy_module('http_2xx')
    first.http.headers['X-Test'] = '1'
    assert 'X-Test' not in store.copy_module('http_2xx').http.headers
    assert store.copy_module('missing') is None


def test_config_property_returns_a_copy(store):
    snapshot = store.config
    snapshot.modules.pop('http_2xx')

    assert 'http_2xx' in store.config.modules
    assert store.copy_module('http_2xx') is not None
