"""Tests for the call-flow catalog."""

import pytest

from hepsim.config import ConfigurationError
from hepsim.scenarios.catalog import (
    CALL_FLOWS,
    REQUEST_TAGS,
    RESPONSE_TAGS,
    FlowTag,
    list_flows,
    parse_flow,
    parse_tag,
    resolve_flow,
)


def test_every_flow_ends_with_end() -> None:
    """Built-in flows terminate with END."""
    for name, flow in CALL_FLOWS.items():
        assert flow[-1] is FlowTag.END, name


def test_default_flow_order() -> None:
    """The default flow is the plain INVITE dialog with media."""
    assert [t.value for t in CALL_FLOWS["default"]] == [
        "INVITE",
        "100Trying",
        "180Ringing",
        "200OK",
        "200OKACK",
        "MEDIA",
        "BYE",
        "200BYE",
        "END",
    ]


def test_request_and_response_tags_are_disjoint() -> None:
    """A SIP tag is either a request or a response."""
    assert not REQUEST_TAGS & RESPONSE_TAGS
    assert FlowTag.MEDIA not in REQUEST_TAGS | RESPONSE_TAGS
    assert FlowTag.END not in REQUEST_TAGS | RESPONSE_TAGS
    assert FlowTag.BYE.is_request
    assert FlowTag.OK_BYE.is_response


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("100", FlowTag.TRYING),
        ("180", FlowTag.RINGING),
        ("200", FlowTag.OK),
        ("ACK", FlowTag.ACK),
        ("200OKACK", FlowTag.ACK),
        ("407", FlowTag.PROXY_AUTH_REQUIRED),
        ("media", FlowTag.MEDIA),
        (" BYE ", FlowTag.BYE),
    ],
)
def test_parse_tag_aliases(raw: str, expected: FlowTag) -> None:
    """Short spellings, enum values and names are all accepted."""
    assert parse_tag(raw) is expected


def test_parse_flow_keeps_unknown_tokens() -> None:
    """Unknown tokens are returned as plain strings."""
    assert parse_flow(["INVITE", "FOO"]) == (FlowTag.INVITE, "FOO")
    assert not isinstance(parse_flow(["FOO"])[0], FlowTag)


def test_resolve_flow() -> None:
    """Names, lists and the default resolve; unknown names fail."""
    assert resolve_flow(None) == ("default", CALL_FLOWS["default"])
    assert resolve_flow("auth")[1] == CALL_FLOWS["auth"]
    assert resolve_flow(["REGISTER", "200", "END"]) == (
        "custom",
        (FlowTag.REGISTER, FlowTag.OK, FlowTag.END),
    )
    with pytest.raises(ConfigurationError):
        resolve_flow("nope")
    with pytest.raises(ConfigurationError):
        resolve_flow([])


def test_list_flows_sorted() -> None:
    """list_flows returns every flow name in order."""
    assert list_flows() == sorted(CALL_FLOWS)
    assert "timeout" in list_flows()
