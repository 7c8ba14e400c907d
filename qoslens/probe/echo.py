"""
ICMP echo session over raw sockets (Linux/macOS)

Sends ``count`` echo requests ``interval`` apart and matches replies by
source address, identifier and sequence. Every request ends up either
received (with its round trip) or lost once its per-packet timeout elapses.
"""

import itertools
import random
import select
import socket
import struct
import threading
import time
import logging
from typing import Optional

from ..exceptions import SessionSetupError
from .base import ProbeContext
from .qos import PacketLog


logger = logging.getLogger(__name__)

# Raw ICMP sockets see every echo reply delivered to the host, so each
# session needs its own identifier.
_identifiers = itertools.count(random.getrandbits(16))
_identifier_lock = threading.Lock()


def next_identifier() -> int:
    with _identifier_lock:
        return next(_identifiers) & 0xFFFF


class EchoSession:
    """
    Echo request/reply session towards one target.

    Raises SessionSetupError on construction if the target cannot be
    resolved or the raw socket cannot be opened (usually missing privileges).
    A ready socket may be passed in as ``sock``.
    """

    ICMP_ECHO_REQUEST = 8
    ICMP_ECHO_REPLY = 0
    HEADER_SIZE = 8
    TIMESTAMP_SIZE = 8

    def __init__(self, target: str, sock: Optional[socket.socket] = None):
        self.target = target
        self.count = 5
        self.size = 56
        self.interval = 1.0  # seconds
        self.timeout = 1.0  # seconds, per packet
        self.ttl = 64
        self.identifier = next_identifier()
        self._sock = sock

        try:
            self.ip = socket.gethostbyname(target)
        except (socket.gaierror, UnicodeError) as e:
            raise SessionSetupError(f"cannot resolve {target!r}: {e}")

        if self._sock is not None:
            return
        try:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
        except PermissionError:
            raise SessionSetupError("raw socket requires root privileges (or CAP_NET_RAW)")
        except OSError as e:
            raise SessionSetupError(f"cannot open ICMP socket: {e}")

    @staticmethod
    def _checksum(data: bytes) -> int:
        """Calculate ICMP checksum (RFC 1071)"""
        if len(data) % 2:
            data += b'\x00'

        s = 0
        for i in range(0, len(data), 2):
            s += (data[i] << 8) + data[i + 1]

        s = (s >> 16) + (s & 0xFFFF)
        s += s >> 16
        return ~s & 0xFFFF

    def _build_packet(self, seq: int) -> bytes:
        """Build ICMP Echo Request carrying a timestamp padded to ``size`` bytes"""
        payload = struct.pack('!d', time.time())
        if self.size > self.TIMESTAMP_SIZE:
            payload += b'Q' * (self.size - self.TIMESTAMP_SIZE)
        else:
            payload = payload[:max(self.size, 0)]

        header = struct.pack('!BBHHH', self.ICMP_ECHO_REQUEST, 0, 0,
                             self.identifier, seq & 0xFFFF)
        cs = self._checksum(header + payload)
        header = struct.pack('!BBHHH', self.ICMP_ECHO_REQUEST, 0, cs,
                             self.identifier, seq & 0xFFFF)
        return header + payload

    def _parse_reply(self, data: bytes, source: str) -> Optional[int]:
        """Return the 16-bit sequence of an echo reply from our target to this session"""
        if source != self.ip or len(data) < 20:
            return None
        ip_header_len = (data[0] & 0x0F) * 4
        icmp_data = data[ip_header_len:]
        if len(icmp_data) < self.HEADER_SIZE or icmp_data[0] != self.ICMP_ECHO_REPLY:
            return None
        ident, seq = struct.unpack('!HH', icmp_data[4:8])
        if ident != self.identifier:
            return None
        return seq

    def run(self, ctx: ProbeContext, log: PacketLog) -> bool:
        """
        Send all packets and wait out their replies.

        Returns False if the context finished first; events recorded up to
        that point stay in ``log``.
        """
        sock = self._sock
        if sock is None:
            raise SessionSetupError("session already closed")
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, self.ttl)

        pending: dict[int, float] = {}
        seq = 0
        next_send = time.monotonic()

        while True:
            if ctx.done():
                return False

            now = time.monotonic()
            if seq < self.count and now >= next_send:
                try:
                    sock.sendto(self._build_packet(seq), (self.ip, 0))
                except OSError as e:
                    logger.debug("send failed for seq %d: %s", seq, e)
                    log.sent(seq)
                    log.lost(seq)
                else:
                    log.sent(seq)
                    pending[seq] = now
                seq += 1
                next_send = now + self.interval

            for s, sent_at in list(pending.items()):
                if now - sent_at >= self.timeout:
                    del pending[s]
                    log.lost(s)

            if seq >= self.count and not pending:
                return True

            wakeups = [sent_at + self.timeout for sent_at in pending.values()]
            if seq < self.count:
                wakeups.append(next_send)
            wait = ctx.bound(max(min(wakeups) - now, 0.0))

            readable, _, _ = select.select([sock], [], [], wait)
            if not readable:
                continue
            data, addr = sock.recvfrom(65535)
            received_at = time.monotonic()
            reply_seq = self._parse_reply(data, addr[0])
            if reply_seq is None:
                continue
            for s in pending:
                if s & 0xFFFF == reply_seq:
                    rtt_ns = int((received_at - pending.pop(s)) * 1e9)
                    log.received(s, rtt_ns)
                    break

    def close(self):
        if self._sock:
            self._sock.close()
            self._sock = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
