# This contains the RequestExecutor, which performs one request from start to
# finish: connect, send the raw bytes, find the end of the response, and
# turn whatever happened into a ResultRecord.
#
# The whole exchange runs under a single absolute deadline, computed once when
# we start. Connecting (including the DNS lookup and the TLS handshake),
# writing the request, and every single read are all bounded by that same
# deadline; there is no separate per-phase timeout.

import ssl
from datetime import timedelta

import curio
from curio import socket
from curio.ssl import CurioSSLContext
import structlog

from ._errors import CONNECT, READ, WRITE, classify_error, describe_error
from ._extractor import MAX_RECV, ResponseExtractor, read_response
from ._records import ResultRecord
from ._timing import TimedStream, utcnow
from ._util import ProtocolError

__all__ = ["RequestExecutor"]

logger = structlog.get_logger(__name__)


class RequestExecutor:
    """Performs single requests.

    Args:
        timeout (float): Seconds each request may take in total.
        ssl_context (ssl.SSLContext): Used for every TLS connection. It is
            shared by all requests and never modified. Defaults to
            :func:`ssl.create_default_context`, i.e. certificates are
            verified.
        max_recv (int): Maximum number of bytes per read.

    Executors hold no per-request state, so one executor can be shared by
    any number of concurrent tasks.

    """
    def __init__(self, timeout, ssl_context=None, max_recv=MAX_RECV):
        if ssl_context is None:
            ssl_context = ssl.create_default_context()
        self.timeout = timeout
        self.ssl_context = ssl_context
        self._tls_context = CurioSSLContext(ssl_context)
        self.max_recv = max_recv

    async def _connect(self, request, opened):
        # Every socket goes into `opened` as soon as it exists, so that the
        # caller can close it even if the deadline hits halfway through
        # connecting or handshaking.
        addresses = await socket.getaddrinfo(
            request.host, request.port, 0, socket.SOCK_STREAM)
        error = OSError("getaddrinfo returned no addresses")
        for family, type_, proto, _, address in addresses:
            sock = socket.socket(family, type_, proto)
            opened.append(sock)
            try:
                await sock.connect(address)
            except OSError as exc:
                error = exc
                continue
            if request.tls:
                # The TLS socket takes over the file descriptor
                sock = await self._tls_context.wrap_socket(
                    sock, server_hostname=request.host,
                    do_handshake_on_connect=False)
                opened[-1] = sock
                await sock.do_handshake()
            return sock
        raise error

    async def execute(self, request):
        """Send ``request`` and capture the response.

        Never raises for anything that goes wrong with the request itself;
        failures are reported through the ``errno`` and ``error`` fields of
        the returned :class:`~rawreq.ResultRecord`, next to whatever part of
        the response had arrived.

        """
        if not request.resolved:
            raise ValueError(
                "port and tls must be resolved before executing a request; "
                "use RequestDescriptor.with_defaults()")
        log = logger.bind(host=request.host, port=request.port)

        extractor = ResponseExtractor(head_request=request.is_head)
        opened = []
        stream = None
        sent_at = None
        phase = CONNECT
        errno = 0
        error = None

        try:
            # One deadline for everything inside the block
            async with curio.timeout_after(self.timeout):
                sock = await self._connect(request, opened)
                phase = WRITE
                await sock.sendall(request.req)
                sent_at = utcnow()
                phase = READ
                stream = TimedStream(sock)
                await read_response(stream, extractor, self.max_recv)
        except (curio.TaskTimeout, Exception) as exc:
            if not isinstance(exc, (curio.TaskTimeout, OSError,
                                    ProtocolError)):
                log.warning("unexpected error during request",
                            phase=phase, exc_info=True)
            errno = classify_error(exc, phase)
            error = describe_error(exc, phase)
        finally:
            for sock in opened:
                await sock.close()

        ping = None
        if stream is not None and stream.first_read_at is not None:
            elapsed = stream.first_read_at - sent_at
            ping = elapsed // timedelta(milliseconds=1)

        if errno:
            log.info("request failed", errno=errno, error=error,
                     received=len(extractor.response))
        else:
            log.debug("request finished", status_code=extractor.status_code,
                      received=len(extractor.response), ping=ping)

        return ResultRecord(request=request,
                            response=extractor.response,
                            sent_at=sent_at,
                            ping=ping,
                            errno=errno,
                            error=error)
