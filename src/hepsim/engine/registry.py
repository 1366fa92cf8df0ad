"""
Live session pool.

The registry owns every in-flight call leg. Admission (create_for_scenario)
builds all legs of a call before inserting any of them, so a relayed call is
either fully present or absent. Iteration returns a snapshot, letting the
scheduler remove sessions while it walks the pool.
"""

import itertools
import logging
import random
from collections import deque
from collections.abc import Iterator

from ..config import Endpoint
from ..defaults import DEFAULT_CAPTURE_ID, DEFAULT_CAPTURE_PASSWORD, DEFAULT_SIP_PORT, RTP_PORT_RANGE
from ..hep.routing import MediaPorts, RoutingDescriptor
from ..scenarios.scenario_loader import Scenario
from ..statistics.random_values import (
    pick_random_element,
    random_call_id,
    random_float,
    random_integer,
    random_phone_number,
    random_public_ip,
    random_string,
)
from .session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Insertion-ordered pool of live sessions."""

    def __init__(
        self,
        rng: random.Random | None = None,
        default_capture_id: int = DEFAULT_CAPTURE_ID,
        capture_password: str = DEFAULT_CAPTURE_PASSWORD,
        max_total_sessions: int = 0,
    ):
        self.rng = rng
        self.default_capture_id = default_capture_id
        self.capture_password = capture_password
        self.max_total_sessions = max_total_sessions
        self._sessions: dict[int, Session] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def __contains__(self, session: object) -> bool:
        return isinstance(session, Session) and session.session_id in self._sessions

    def count_for(self, scenario_name: str) -> int:
        """Live sessions belonging to one scenario."""
        return sum(1 for s in self._sessions.values() if s.scenario.name == scenario_name)

    def remove(self, session: Session) -> bool:
        """Remove a session; returns False when it was already gone."""
        return self._sessions.pop(session.session_id, None) is not None

    def _has_capacity(self, scenario: Scenario, legs: int) -> bool:
        if scenario.max_sessions and self.count_for(scenario.name) + legs > scenario.max_sessions:
            return False
        if self.max_total_sessions and len(self._sessions) + legs > self.max_total_sessions:
            return False
        return True

    def _capture_id(self, scenario: Scenario) -> int:
        if scenario.capture_id is not None:
            return scenario.capture_id
        for endpoint in (scenario.caller, scenario.via, scenario.callee):
            if endpoint is not None and endpoint.capture_id is not None:
                return endpoint.capture_id
        return self.default_capture_id

    def _media_ports(self) -> MediaPorts:
        low, high = RTP_PORT_RANGE
        return MediaPorts(
            src_port=random_integer(low, high, self.rng),
            dst_port=random_integer(low, high, self.rng),
        )

    def _caller_address(self, scenario: Scenario) -> tuple[str, int]:
        if scenario.source_ips:
            return pick_random_element(scenario.source_ips, self.rng), DEFAULT_SIP_PORT
        if scenario.caller is not None:
            return scenario.caller.ip, scenario.caller.port
        return random_public_ip(self.rng), DEFAULT_SIP_PORT

    def _callee_address(self, scenario: Scenario) -> tuple[str, int]:
        if scenario.callee is not None:
            return scenario.callee.ip, scenario.callee.port
        return random_public_ip(self.rng), DEFAULT_SIP_PORT

    def _new_session(
        self,
        scenario: Scenario,
        now: float,
        *,
        call_id: str,
        correlation_id: str,
        from_number: str,
        to_number: str,
        forward: RoutingDescriptor,
        capture_id: int,
        target_duration: float,
        leg: int,
    ) -> Session:
        return Session(
            session_id=next(self._ids),
            scenario=scenario,
            call_id=call_id,
            from_number=from_number,
            to_number=to_number,
            flow=deque(scenario.flow),
            forward=forward,
            media=self._media_ports(),
            capture_id=capture_id,
            capture_password=self.capture_password,
            correlation_id=correlation_id,
            target_duration=target_duration,
            created_at=now,
            from_tag=random_string(10, self.rng),
            to_tag=random_string(10, self.rng),
            seq=random_integer(1, 100, self.rng),
            leg=leg,
        )

    def create_for_scenario(self, scenario: Scenario, now: float) -> list[Session]:
        """
        Admit one call for ``scenario``.

        Returns the created legs (one, or two for a relayed scenario), or an
        empty list when a session cap is reached.
        """
        legs = 2 if scenario.via is not None else 1
        if not self._has_capacity(scenario, legs):
            logger.debug("Scenario %s at capacity, admission skipped", scenario.name)
            return []

        caller_ip, caller_port = self._caller_address(scenario)
        callee_ip, callee_port = self._callee_address(scenario)
        capture_id = self._capture_id(scenario)
        target_duration = random_float(scenario.min_duration, scenario.max_duration, self.rng)
        from_number = random_phone_number(self.rng)
        to_number = random_phone_number(self.rng)
        call_id = random_call_id(self.rng)

        via: Endpoint | None = scenario.via
        if via is None:
            sessions = [
                self._new_session(
                    scenario,
                    now,
                    call_id=call_id,
                    correlation_id=call_id,
                    from_number=from_number,
                    to_number=to_number,
                    forward=RoutingDescriptor(caller_ip, callee_ip, caller_port, callee_port),
                    capture_id=capture_id,
                    target_duration=target_duration,
                    leg=1,
                )
            ]
        else:
            sessions = [
                self._new_session(
                    scenario,
                    now,
                    call_id=call_id,
                    correlation_id=call_id,
                    from_number=from_number,
                    to_number=via.ip,
                    forward=RoutingDescriptor(caller_ip, via.ip, caller_port, via.port),
                    capture_id=capture_id,
                    target_duration=target_duration,
                    leg=1,
                ),
                self._new_session(
                    scenario,
                    now,
                    call_id=random_call_id(self.rng),
                    correlation_id=call_id,
                    from_number=via.ip,
                    to_number=to_number,
                    forward=RoutingDescriptor(via.ip, callee_ip, via.port, callee_port),
                    capture_id=capture_id,
                    target_duration=target_duration,
                    leg=2,
                ),
            ]

        for session in sessions:
            self._sessions[session.session_id] = session
        logger.debug(
            "Admitted %d leg(s) for scenario %s (call %s, %.3fs)",
            len(sessions),
            scenario.name,
            call_id,
            target_duration,
        )
        return sessions
