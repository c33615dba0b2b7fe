# Requests going in, results coming out, and the line format ("httpipe")
# both travel in.
#
# One JSON object per line. A request line needs at least "host" and "req";
# "port" and "tls" are optional. A result line is the request line with some
# more fields filled in:
#
#   reqat  when the request was sent, UTC, e.g. "2023-12-17T12:05:16Z"
#   ping   milliseconds from sending the request to the first response byte
#   resp   the raw response
#   err    error message, if something went wrong
#   errno  error number, see _errors.py
#
# Fields that don't apply are left out.

import json
from dataclasses import dataclass, replace
from datetime import timezone

__all__ = ["RequestDescriptor", "ResultRecord", "RecordError",
           "decode_request", "encode_result"]

DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class RecordError(ValueError):
    """A line could not be decoded into a request."""


@dataclass(frozen=True)
class RequestDescriptor:
    """Where to send a raw request.

    ``port`` and ``tls`` may be None, meaning "use the default";
    :meth:`with_defaults` fills them in.

    """
    host: str
    req: bytes
    port: int = None
    tls: bool = None

    @property
    def method(self):
        return self.req.split(b" ", 1)[0]

    @property
    def is_head(self):
        return self.method.upper() == b"HEAD"

    @property
    def resolved(self):
        return self.port is not None and self.tls is not None

    def with_defaults(self):
        tls = True if self.tls is None else self.tls
        port = self.port
        if port is None:
            port = DEFAULT_HTTPS_PORT if tls else DEFAULT_HTTP_PORT
        return replace(self, port=port, tls=tls)


@dataclass(frozen=True)
class ResultRecord:
    """The outcome of one request.

    ``errno`` is 0 on success, in which case ``response`` holds the whole
    response. Otherwise ``error`` explains what went wrong, and
    ``response`` holds whatever had arrived until then (possibly nothing).

    """
    request: RequestDescriptor
    response: bytes = b""
    sent_at: object = None
    ping: int = None
    errno: int = 0
    error: str = None

    def __post_init__(self):
        if bool(self.errno) != bool(self.error):
            raise ValueError(
                "errno and error must be given together (got {!r}, {!r})"
                .format(self.errno, self.error))

    @property
    def ok(self):
        return self.errno == 0


def _require(obj, key, type_, type_name, line):
    value = obj.get(key)
    # bool is a subclass of int, but true is not a port number
    if (not isinstance(value, type_)
            or (type_ is int and isinstance(value, bool))):
        raise RecordError(
            "field {!r} must be {} in line {!r}".format(key, type_name, line))
    return value


def decode_request(line):
    """Parse one input line into a :class:`RequestDescriptor`.

    Raises:
        RecordError: If the line isn't a JSON object with the right fields.

    """
    try:
        obj = json.loads(line)
    except ValueError as exc:
        raise RecordError("could not parse line {!r}: {}".format(line, exc))
    if not isinstance(obj, dict):
        raise RecordError("expected a JSON object, got {!r}".format(line))

    host = _require(obj, "host", str, "a string", line)
    req = _require(obj, "req", str, "a string", line)
    port = None
    if obj.get("port") is not None:
        port = _require(obj, "port", int, "an integer", line)
        if not 0 <= port <= 65535:
            raise RecordError("port out of range in line {!r}".format(line))
        # 0 is what you get from a zero-valued field; treat it as missing
        if port == 0:
            port = None
    tls = None
    if obj.get("tls") is not None:
        tls = _require(obj, "tls", bool, "a boolean", line)

    return RequestDescriptor(host=host, req=req.encode("utf-8"),
                             port=port, tls=tls)


def encode_result(result):
    """Render a :class:`ResultRecord` as one output line (without newline).
    """
    request = result.request
    obj = {"host": request.host}
    if request.port:
        obj["port"] = request.port
    if request.tls is not None:
        obj["tls"] = request.tls
    obj["req"] = request.req.decode("utf-8", "replace")
    if result.sent_at is not None:
        obj["reqat"] = result.sent_at.astimezone(timezone.utc).strftime(
            TIMESTAMP_FORMAT)
    if result.ping:
        obj["ping"] = result.ping
    if result.response:
        obj["resp"] = result.response.decode("utf-8", "replace")
    if result.error:
        obj["err"] = result.error
    if result.errno:
        obj["errno"] = result.errno
    return json.dumps(obj, ensure_ascii=False)
