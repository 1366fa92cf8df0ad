"""
Generate SIP request/response text for each call event.

Every builder takes a SipDialog (the dialog state of one call leg) and
returns the raw message. From/To/Call-ID/CSeq are derived from the dialog so
that every message of a call carries consistent headers; requests and
responses both describe the dialog from the caller's point of view and the
scheduler decides which direction the packet travels.
"""

import random
from dataclasses import dataclass

from ..hep.routing import MediaPorts, RoutingDescriptor
from ..statistics.random_values import random_branch, random_string

CRLF = "\r\n"
USER_AGENT = "Grandstream GXP2200 1.0.3.27"
SERVER_AGENT = "SBC"
ALLOW = "INVITE, ACK, OPTIONS, CANCEL, BYE, SUBSCRIBE, NOTIFY, INFO, REFER, UPDATE, MESSAGE"
SUPPORTED = "replaces, path, timer, eventlist"
REALM = "hepsim"


@dataclass(frozen=True)
class SipDialog:
    """Header values shared by every message of one call leg."""

    call_id: str
    seq: int
    method: str
    from_number: str
    to_number: str
    from_tag: str
    to_tag: str
    caller: RoutingDescriptor
    media: MediaPorts
    correlation_id: str = ""
    branch: str = ""

    @property
    def from_uri(self) -> str:
        return f"sip:{self.from_number}@{self.caller.src_ip}:{self.caller.src_port}"

    @property
    def to_uri(self) -> str:
        return f"sip:{self.to_number}@{self.caller.dst_ip}:{self.caller.dst_port}"


def _finish(lines: list[str], body: str = "") -> str:
    """Join headers, add Content-Length and the (optional) body."""
    lines = [*lines, f"Content-Length: {len(body.encode('utf-8'))}"]
    return CRLF.join(lines) + CRLF + CRLF + body


def _via(dialog: SipDialog, rng: random.Random | None) -> str:
    branch = dialog.branch or random_branch(rng)
    return f"Via: SIP/2.0/UDP {dialog.caller.src_ip}:{dialog.caller.src_port};branch={branch};rport"


def _caller_sdp(dialog: SipDialog) -> str:
    ip = dialog.caller.src_ip
    return CRLF.join(
        [
            "v=0",
            f"o={dialog.from_number} 8000 8000 IN IP4 {ip}",
            "s=SIP Call",
            f"c=IN IP4 {ip}",
            "t=0 0",
            f"m=audio {dialog.media.src_port} RTP/AVP 0 8 9 18 101",
            "a=sendrecv",
            "a=rtpmap:0 PCMU/8000",
            "a=ptime:20",
            "a=rtpmap:8 PCMA/8000",
            "a=rtpmap:9 G722/8000",
            "a=rtpmap:18 G729/8000",
            "a=fmtp:18 annexb=no",
            "a=rtpmap:101 telephone-event/8000",
            "a=fmtp:101 0-15",
        ]
    ) + CRLF


def _callee_sdp(dialog: SipDialog) -> str:
    ip = dialog.caller.dst_ip
    return CRLF.join(
        [
            "v=0",
            f"o=root 11882 11882 IN IP4 {ip}",
            "s=session",
            f"c=IN IP4 {ip}",
            "t=0 0",
            f"m=audio {dialog.media.dst_port} RTP/AVP 8 0 18 101",
            "a=rtpmap:8 PCMA/8000",
            "a=rtpmap:0 PCMU/8000",
            "a=rtpmap:18 G729/8000",
            "a=fmtp:18 annexb=no",
            "a=rtpmap:101 telephone-event/8000",
            "a=fmtp:101 0-16",
            "a=silenceSupp:off - - - -",
            "a=ptime:20",
            "a=sendrecv",
        ]
    ) + CRLF


def _response(
    dialog: SipDialog, status: str, rng: random.Random | None, to_tag: bool = True
) -> list[str]:
    to = f"To: <{dialog.to_uri}>"
    if to_tag:
        to += f";tag={dialog.to_tag}"
    return [
        f"SIP/2.0 {status}",
        _via(dialog, rng),
        f"From: <{dialog.from_uri}>;tag={dialog.from_tag}",
        to,
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} {dialog.method}",
    ]


def invite(dialog: SipDialog, rng: random.Random | None = None, authorized: bool = False) -> str:
    """INVITE with SDP offer; ``authorized`` adds Proxy-Authorization credentials."""
    lines = [
        f"INVITE {dialog.to_uri} SIP/2.0",
        _via(dialog, rng),
        f"From: <{dialog.from_uri}>;tag={dialog.from_tag}",
        f"To: <{dialog.to_uri}>",
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} INVITE",
        f"Contact: <{dialog.from_uri}>",
        "Max-Forwards: 70",
    ]
    if dialog.correlation_id:
        lines.append(f"X-CID: {dialog.correlation_id}")
    lines += [
        f"Supported: {SUPPORTED}",
        f"Allow: {ALLOW}",
        "Content-Type: application/sdp",
        "Accept: application/sdp, application/dtmf-relay",
    ]
    if authorized:
        lines.append(
            f'Proxy-Authorization: Digest username="{dialog.from_number}",realm="{REALM}",'
            f'nonce="{random_string(32, rng)}",uri="{dialog.to_uri}",'
            f'response="{random_string(32, rng)}",cnonce="{random_string(32, rng)}",'
            "nc=00000001,qop=auth,algorithm=MD5"
        )
    lines.append(f"User-Agent: {USER_AGENT}")
    return _finish(lines, _caller_sdp(dialog))


def invite_auth(dialog: SipDialog, rng: random.Random | None = None) -> str:
    return invite(dialog, rng, authorized=True)


def trying(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "100 Trying", rng, to_tag=False)
    lines.append(f"User-Agent: {USER_AGENT}")
    return _finish(lines)


def ringing(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "180 Ringing", rng)
    lines += [
        f"Contact: <{dialog.to_uri}>",
        f"Supported: {SUPPORTED}",
        f"User-Agent: {USER_AGENT}",
        "Allow-Events: talk, hold",
        f"Allow: {ALLOW}",
    ]
    return _finish(lines)


def ok(dialog: SipDialog, rng: random.Random | None = None) -> str:
    """200 OK for the dialog's current transaction (SDP answer only for INVITE)."""
    lines = _response(dialog, "200 OK", rng)
    if dialog.method == "INVITE":
        lines += [
            f"User-Agent: {SERVER_AGENT}",
            "Allow: INVITE, ACK, CANCEL, OPTIONS, BYE, REFER, SUBSCRIBE, NOTIFY",
            "Supported: replaces",
            f"Contact: <{dialog.to_uri}>",
            "Content-Type: application/sdp",
        ]
        return _finish(lines, _callee_sdp(dialog))
    if dialog.method == "REGISTER":
        lines += [
            f"Contact: <{dialog.from_uri}>;expires=3600",
            f"Server: {SERVER_AGENT}",
        ]
        return _finish(lines)
    lines.append(f"Server: {SERVER_AGENT}")
    return _finish(lines)


def proxy_auth_required(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "407 Proxy Authentication Required", rng)
    lines += [
        f"User-Agent: {USER_AGENT}",
        "Accept: application/sdp",
        f"Allow: {ALLOW}",
        "Supported: timer, path, replaces",
        f'Proxy-Authenticate: Digest realm="{REALM}", nonce="{random_string(32, rng)}", algorithm=MD5, qop="auth"',
    ]
    return _finish(lines)


def unauthorized(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "401 Unauthorized", rng)
    lines += [
        f"Server: {SERVER_AGENT}",
        f'WWW-Authenticate: Digest realm="{REALM}", nonce="{random_string(32, rng)}", algorithm=MD5, qop="auth"',
    ]
    return _finish(lines)


def forbidden(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "403 Forbidden", rng)
    lines += [f"Server: {SERVER_AGENT}", "Reason: Q.850;cause=21;text=\"Call rejected\""]
    return _finish(lines)


def request_timeout(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "408 Request Timeout", rng)
    lines.append(f"Server: {SERVER_AGENT}")
    return _finish(lines)


def ack(dialog: SipDialog, rng: random.Random | None = None) -> str:
    """ACK for the final response of the current INVITE transaction."""
    lines = [
        f"ACK {dialog.to_uri} SIP/2.0",
        _via(dialog, rng),
        f"From: <{dialog.from_uri}>;tag={dialog.from_tag}",
        f"To: <{dialog.to_uri}>;tag={dialog.to_tag}",
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} ACK",
        "Max-Forwards: 70",
    ]
    return _finish(lines)


def register(dialog: SipDialog, rng: random.Random | None = None, authorized: bool = False) -> str:
    registrar = f"sip:{dialog.caller.dst_ip}:{dialog.caller.dst_port}"
    lines = [
        f"REGISTER {registrar} SIP/2.0",
        _via(dialog, rng),
        f"From: <{dialog.from_uri}>;tag={dialog.from_tag}",
        f"To: <{dialog.from_uri}>",
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} REGISTER",
        f"Contact: <{dialog.from_uri}>",
        "Max-Forwards: 70",
        "Expires: 3600",
    ]
    if authorized:
        lines.append(
            f'Authorization: Digest username="{dialog.from_number}",realm="{REALM}",'
            f'nonce="{random_string(32, rng)}",uri="{registrar}",'
            f'response="{random_string(32, rng)}",algorithm=MD5'
        )
    lines.append(f"User-Agent: {USER_AGENT}")
    return _finish(lines)


def register_auth(dialog: SipDialog, rng: random.Random | None = None) -> str:
    return register(dialog, rng, authorized=True)


def info_dtmf(dialog: SipDialog, rng: random.Random | None = None) -> str:
    """SIP INFO carrying one DTMF digit (application/dtmf-relay)."""
    r = rng if rng is not None else random
    body = f"Signal={r.choice('0123456789*#')}{CRLF}Duration=160{CRLF}"
    lines = [
        f"INFO {dialog.to_uri} SIP/2.0",
        _via(dialog, rng),
        f"From: <{dialog.from_uri}>;tag={dialog.from_tag}",
        f"To: <{dialog.to_uri}>;tag={dialog.to_tag}",
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} INFO",
        "Max-Forwards: 70",
        "Content-Type: application/dtmf-relay",
    ]
    return _finish(lines, body)


def bye(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = [
        f"BYE {dialog.to_uri} SIP/2.0",
        _via(dialog, rng),
        f"From: <{dialog.from_uri};user=phone>;tag={dialog.from_tag}",
        f"To: <{dialog.to_uri};user=phone>;tag={dialog.to_tag}",
        f"Call-ID: {dialog.call_id}",
        f"CSeq: {dialog.seq} BYE",
        f"Contact: <{dialog.from_uri};user=phone>",
        "Max-Forwards: 70",
        f"Supported: {SUPPORTED}",
        f"User-Agent: {USER_AGENT}",
        f"Allow: {ALLOW}",
    ]
    return _finish(lines)


def ok_bye(dialog: SipDialog, rng: random.Random | None = None) -> str:
    lines = _response(dialog, "200 OK", rng)
    lines += [
        "Server: Application Server",
        f"P-Out-Socket: udp:{dialog.caller.src_ip}:{dialog.caller.src_port}",
    ]
    return _finish(lines)
