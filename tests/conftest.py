import pytest

from qoslens.config import SafeConfig, load_config
from qoslens.exceptions import SessionSetupError
from qoslens.history import ResultHistory
from qoslens.orchestrator import ProbeOrchestrator
from qoslens.probe import ICMPQoSProber


MS = 1_000_000  # nanoseconds


class FakeEchoSession:
    """
    Scripted echo session.

    replies: seq -> rtt in nanoseconds, or None for a lost packet.
    Sequences missing from the script are lost. With ``reverse`` the
    replies are delivered in reverse sequence order after all sends.
    With ``stall_after`` the session stops sending after that many packets
    and waits for the context deadline.
    """

    instances = []

    def __init__(self, target, replies=None, reverse=False, stall_after=None):
        self.target = target
        self.replies = replies or {}
        self.reverse = reverse
        self.stall_after = stall_after
        self.count = self.size = self.ttl = None
        self.interval = self.timeout = None
        self.closed = False
        FakeEchoSession.instances.append(self)

    def run(self, ctx, log):
        delivered = []
        for seq in range(self.count):
            if self.stall_after is not None and seq >= self.stall_after:
                while not ctx.wait(0.01):
                    pass
                for s in delivered:
                    self._deliver(log, s)
                return False
            if ctx.done():
                return False
            log.sent(seq)
            delivered.append(seq)
        if self.reverse:
            delivered.reverse()
        for seq in delivered:
            self._deliver(log, seq)
        return True

    def _deliver(self, log, seq):
        rtt = self.replies.get(seq)
        if rtt is None:
            log.lost(seq)
        else:
            log.received(seq, rtt)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def fake_session_factory(**kwargs):
    def factory(target):
        return FakeEchoSession(target, **kwargs)
    return factory


def failing_session_factory(target):
    raise SessionSetupError(f"cannot resolve {target!r}")


SCENARIO_REPLIES = {0: 10 * MS, 1: 12 * MS, 2: 11 * MS, 4: 13 * MS}

SCENARIO_CONFIG = {
    'modules': {
        'icmp_qos': {
            'prober': 'icmp_qos',
            'timeout': '10s',
            'icmp_qos': {
                'packet_size': 56,
                'count': 5,
                'interval': 100,
                'timeout': 1000,
            },
        },
        'http_2xx': {
            'prober': 'http',
            'timeout': 5,
            'http': {
                'method': 'POST',
                'headers': {'X-Token': 'abc', 'Accept': 'text/plain'},
                'body': 'ping',
                'basic_auth': {'username': 'admin', 'password': 'secret'},
            },
        },
        'grpc_health': {'prober': 'grpc'},
    }
}


@pytest.fixture(autouse=True)
def reset_fake_sessions():
    FakeEchoSession.instances = []
    yield


@pytest.fixture
def store():
    return SafeConfig(load_config(SCENARIO_CONFIG))


@pytest.fixture
def history():
    return ResultHistory(max_results=10)


@pytest.fixture
def orchestrator(store, history):
    probers = {'icmp_qos': ICMPQoSProber(session_factory=fake_session_factory(replies=SCENARIO_REPLIES))}
    return ProbeOrchestrator(store, history=history, probers=probers)
