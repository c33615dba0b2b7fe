# Mapping failures to error numbers
#
# Every request that fails gets a small integer "errno" in its result, so
# that whoever consumes the output can tell DNS trouble from a dead server
# from a timeout without parsing error messages. The numbers are grouped by
# layer: 1x name resolution, 2x TLS, 3x TCP, 4x HTTP, 99 everything else.
#
# classify_error() checks the most specific things first:
#
#   1. the per-request deadline expired (whatever we were doing at the time)
#   2. structured network errors: DNS lookup failed / timed out, connection
#      refused
#   3. TLS certificate verification failed
#   4. the phase we were in when it happened ("write", "read")
#   5. otherwise: unclassified
#
# It never raises, and the same kind of error always gets the same number.

import socket
import ssl

import curio

from ._util import ProtocolError

__all__ = [
    "ERRNO_DNS_NOT_FOUND", "ERRNO_DNS_TIMEOUT", "ERRNO_TLS_VERIFICATION",
    "ERRNO_CONNECTION_REFUSED", "ERRNO_TIMEOUT", "ERRNO_WRITE_FAILED",
    "ERRNO_READ_FAILED", "ERRNO_UNCLASSIFIED",
    "classify_error", "describe_error",
]

ERRNO_DNS_NOT_FOUND = 10
ERRNO_DNS_TIMEOUT = 11
ERRNO_TLS_VERIFICATION = 20
ERRNO_CONNECTION_REFUSED = 30
ERRNO_TIMEOUT = 31
ERRNO_WRITE_FAILED = 32
ERRNO_READ_FAILED = 40
ERRNO_UNCLASSIFIED = 99

# Phases of a request, as passed to classify_error()
CONNECT = "connect"
WRITE = "write"
READ = "read"

_DNS_NOT_FOUND_CODES = {
    code for code in (getattr(socket, "EAI_NONAME", None),
                      getattr(socket, "EAI_NODATA", None))
    if code is not None
}
_DNS_TIMEOUT_CODES = {
    code for code in (getattr(socket, "EAI_AGAIN", None),)
    if code is not None
}

_PHASE_ERRNOS = {
    WRITE: ERRNO_WRITE_FAILED,
    READ: ERRNO_READ_FAILED,
}


def _is_timeout(exc):
    # socket.timeout is an alias of TimeoutError on current Pythons, but it
    # doesn't hurt to check both.
    return isinstance(exc, (curio.TaskTimeout, TimeoutError, socket.timeout))


def _network_errno(exc):
    if isinstance(exc, socket.gaierror):
        if exc.errno in _DNS_NOT_FOUND_CODES:
            return ERRNO_DNS_NOT_FOUND
        if exc.errno in _DNS_TIMEOUT_CODES:
            return ERRNO_DNS_TIMEOUT
        return None
    if isinstance(exc, ConnectionRefusedError):
        return ERRNO_CONNECTION_REFUSED
    return None


def classify_error(exc, phase=CONNECT):
    if _is_timeout(exc):
        return ERRNO_TIMEOUT
    errno = _network_errno(exc)
    if errno is not None:
        return errno
    # XX FIXME: we can't tell an expired certificate from a hostname mismatch
    # from an unknown CA here; they all end up as the same number.
    if isinstance(exc, ssl.SSLCertVerificationError):
        return ERRNO_TLS_VERIFICATION
    if isinstance(exc, (OSError, ProtocolError)):
        return _PHASE_ERRNOS.get(phase, ERRNO_UNCLASSIFIED)
    return ERRNO_UNCLASSIFIED


def describe_error(exc, phase=CONNECT):
    if _is_timeout(exc):
        return "{}: timeout exceeded".format(phase)
    detail = str(exc) or type(exc).__name__
    return "{}: {}".format(phase, detail)
