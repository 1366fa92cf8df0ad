"""
hepsim - HEP call-flow simulator.

This package simulates concurrent SIP call flows and emits HEPv3 telemetry
(SIP signalling, RTP/RTCP quality reports, call logs) to a monitoring
collector such as Homer.
"""

__version__ = "1.0.0"
