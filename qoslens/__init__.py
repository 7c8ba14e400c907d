"""
qoslens - network quality probes

Runs time-bounded probes (ICMP QoS, ICMP, TCP, HTTP, DNS) against a target
and returns the measurements as a Prometheus-style metric snapshot.
"""

__version__ = "1.0.0"
