"""
Call-flow catalog: named, ordered sequences of SIP event tags.

Flows are data. A scenario names one of CALL_FLOWS (or spells out its own
list of tags) and each simulated call consumes that list front to back, one
tag per scheduler tick.
"""

from enum import Enum

from ..config import ConfigurationError


class FlowTag(str, Enum):
    """One call event. Values are the tag spellings used in config files."""

    INVITE = "INVITE"
    INVITE_AUTH = "INVITEAUTH"
    ACK_407 = "ACK407"
    ACK = "200OKACK"
    REGISTER = "REGISTER"
    REGISTER_AUTH = "REGISTERAUTH"
    DTMF = "DTMF"
    BYE = "BYE"
    TRYING = "100Trying"
    RINGING = "180Ringing"
    OK = "200OK"
    PROXY_AUTH_REQUIRED = "407"
    UNAUTHORIZED = "401"
    FORBIDDEN = "403"
    REQUEST_TIMEOUT = "408"
    OK_BYE = "200BYE"
    MEDIA = "MEDIA"
    END = "END"

    @property
    def is_request(self) -> bool:
        return self in REQUEST_TAGS

    @property
    def is_response(self) -> bool:
        return self in RESPONSE_TAGS


REQUEST_TAGS = frozenset(
    {
        FlowTag.INVITE,
        FlowTag.INVITE_AUTH,
        FlowTag.ACK_407,
        FlowTag.ACK,
        FlowTag.REGISTER,
        FlowTag.REGISTER_AUTH,
        FlowTag.DTMF,
        FlowTag.BYE,
    }
)

RESPONSE_TAGS = frozenset(
    {
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.PROXY_AUTH_REQUIRED,
        FlowTag.UNAUTHORIZED,
        FlowTag.FORBIDDEN,
        FlowTag.REQUEST_TIMEOUT,
        FlowTag.OK_BYE,
    }
)

# Short spellings accepted in config files in addition to the enum values.
TAG_ALIASES: dict[str, FlowTag] = {
    "100": FlowTag.TRYING,
    "180": FlowTag.RINGING,
    "200": FlowTag.OK,
    "ACK": FlowTag.ACK,
    "200BYEOK": FlowTag.OK_BYE,
}

# A flow entry is a known tag or the raw text of an unrecognised one.
FlowEntry = FlowTag | str

CALL_FLOWS: dict[str, tuple[FlowTag, ...]] = {
    "default": (
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.ACK,
        FlowTag.MEDIA,
        FlowTag.BYE,
        FlowTag.OK_BYE,
        FlowTag.END,
    ),
    "auth": (
        FlowTag.INVITE,
        FlowTag.PROXY_AUTH_REQUIRED,
        FlowTag.ACK_407,
        FlowTag.INVITE_AUTH,
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.ACK,
        FlowTag.MEDIA,
        FlowTag.BYE,
        FlowTag.OK_BYE,
        FlowTag.END,
    ),
    "registration": (FlowTag.REGISTER, FlowTag.OK, FlowTag.END),
    "auth_register": (
        FlowTag.REGISTER,
        FlowTag.UNAUTHORIZED,
        FlowTag.REGISTER_AUTH,
        FlowTag.OK,
        FlowTag.END,
    ),
    "dtmf": (
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.ACK,
        FlowTag.MEDIA,
        FlowTag.DTMF,
        FlowTag.BYE,
        FlowTag.OK_BYE,
        FlowTag.END,
    ),
    "timeout": (
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.ACK,
        FlowTag.BYE,
        FlowTag.REQUEST_TIMEOUT,
        FlowTag.END,
    ),
    "unauthorized": (
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.FORBIDDEN,
        FlowTag.END,
    ),
}


def parse_tag(raw: object) -> FlowEntry:
    """Map a config token to a FlowTag; unknown tokens are returned as plain strings."""
    text = str(raw).strip()
    if text in TAG_ALIASES:
        return TAG_ALIASES[text]
    try:
        return FlowTag(text)
    except ValueError:
        pass
    try:
        return FlowTag[text.upper()]
    except KeyError:
        return text


def parse_flow(tokens: list[object] | tuple[object, ...]) -> tuple[FlowEntry, ...]:
    """Parse an explicit list of tags. Unknown tags are kept (the scheduler rejects them)."""
    return tuple(parse_tag(t) for t in tokens)


def resolve_flow(flow: object) -> tuple[str, tuple[FlowEntry, ...]]:
    """
    Resolve a scenario's ``flow`` setting.

    A string names an entry of CALL_FLOWS; a list is an explicit tag sequence.
    Returns (flow_name, tags). Unknown flow names are configuration errors.
    """
    if flow is None:
        return "default", CALL_FLOWS["default"]
    if isinstance(flow, str):
        name = flow.strip()
        if name not in CALL_FLOWS:
            raise ConfigurationError(
                f"Unknown call flow: {name} (available: {', '.join(sorted(CALL_FLOWS))})"
            )
        return name, CALL_FLOWS[name]
    if isinstance(flow, (list, tuple)):
        if not flow:
            raise ConfigurationError("An explicit call flow must contain at least one tag")
        return "custom", parse_flow(flow)
    raise ConfigurationError(f"flow must be a flow name or a list of tags, got {flow!r}")


def list_flows() -> list[str]:
    """Names of the built-in call flows."""
    return sorted(CALL_FLOWS)
