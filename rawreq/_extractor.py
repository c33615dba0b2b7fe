# Code to find the end of an HTTP/1.1 response
#
# We talk to servers that keep the connection open after answering
# (keep-alive), so "read until EOF" is not good enough: we have to work out
# from the status line and headers where the response ends, and stop
# reading right there. Everything we read up to that point is copied to the
# output *verbatim* -- the point is to reproduce exactly what the server
# sent, not to normalize it -- so unlike a real HTTP parser we never rebuild
# lines from parsed fields.
#
# Strategy: the ResponseExtractor does no I/O at all. You push bytes
# in with receive_data() (b"" meaning EOF), and call extract(), which either
# returns NEED_DATA or COMPLETE, or raises a RemoteProtocolError. Whatever
# had been copied before an error is still available as .response.
#
# We are deliberately lax compared to RFC 7230: bare \n is accepted
# wherever \r\n is expected, header lines we don't care about are never
# validated, and we don't cross-check Transfer-Encoding against
# Content-Length (chunked just wins).

import re

from ._receivebuffer import ReceiveBuffer
from ._util import (
    LocalProtocolError, RemoteProtocolError, make_sentinel, validate,
)

__all__ = ["ResponseExtractor", "read_response", "NEED_DATA", "COMPLETE"]

NEED_DATA = make_sentinel("NEED_DATA")
COMPLETE = make_sentinel("COMPLETE")

# Internal states
STATUS_LINE = make_sentinel("STATUS_LINE")
HEADERS = make_sentinel("HEADERS")
BODY = make_sentinel("BODY")
DONE = make_sentinel("DONE")
ERROR = make_sentinel("ERROR")

# How much we ask for per recv() call
MAX_RECV = 2 ** 16

# We don't parse the status line beyond what we need: the second field has
# to be a number. "HTTP/1.1 200" without reason phrase is fine.
status_code_re = re.compile(br"[0-9]+")

content_length_re = re.compile(br"[0-9]+")

#      chunk-size     = 1*HEXDIG
#
# Leading zeros are fine, so only the value is limited, not the number of
# digits: it has to fit in a signed 64-bit integer.
chunk_size_re = re.compile(br"(?P<chunk_size>[0-9A-Fa-f]+)")
MAX_CHUNK_SIZE = 2 ** 63 - 1


def _strip_terminator(line):
    return line.rstrip(b"\r\n")


def _parse_status_code(line):
    fields = line.split()
    if len(fields) < 2 or not status_code_re.fullmatch(fields[1]):
        raise RemoteProtocolError(
            "malformed status line {!r}".format(bytes(line)))
    return int(fields[1])


def _has_no_body(status_code):
    return 100 <= status_code < 200 or status_code in (204, 304)


def _body_framing(head_request, status_code, chunked, content_length):
    # Returns one of:
    #
    #    ("content-length", (count,))
    #    ("chunked", ())
    #    ("http/1.0", ())
    #
    # which are (lookup key, *args) for constructing a body reader.
    #
    # Step 1: some responses never have a body, regardless of what the
    # headers say.
    if head_request or _has_no_body(status_code):
        return ("content-length", (0,))
    # Step 2: Transfer-Encoding beats Content-Length
    if chunked:
        return ("chunked", ())
    # Step 3: Content-Length
    if content_length is not None:
        return ("content-length", (content_length,))
    # Step 4: read until the peer closes the connection
    return ("http/1.0", ())


# Body readers: callables taking the receive buffer and the output
# bytearray. They copy as much as they can, and return True once the body is
# complete, or False if they need more data. read_eof() is called if the
# stream ends before that; it returns True if EOF legitimately ends the body,
# or raises.

class ContentLengthReader:
    def __init__(self, length):
        self._length = length

    def __call__(self, buf, out):
        while self._length > 0:
            data = buf.maybe_extract_at_most(self._length)
            if data is None:
                return False
            out += data
            self._length -= len(data)
        return True

    def read_eof(self):
        raise RemoteProtocolError(
            "peer closed connection without sending complete response body: "
            "{} bytes missing".format(self._length))


class ChunkedReader:
    def __init__(self):
        # Bytes still to copy from the current chunk, *including* the line
        # terminator that follows the payload.
        self._bytes_to_copy = 0
        self._reading_trailer = False

    def __call__(self, buf, out):
        while True:
            if self._bytes_to_copy > 0:
                data = buf.maybe_extract_at_most(self._bytes_to_copy)
                if data is None:
                    return False
                out += data
                self._bytes_to_copy -= len(data)
                continue
            line = buf.maybe_extract_next_line()
            if line is None:
                return False
            out += line
            line = _strip_terminator(line)
            if self._reading_trailer:
                if not line:
                    return True
                continue
            # Chunk extensions are copied along with the line, but otherwise
            # ignored.
            size = line.split(b";", 1)[0]
            matches = validate(chunk_size_re, size,
                               "invalid chunk size line {!r}", bytes(line))
            chunk_size = int(matches["chunk_size"], base=16)
            if chunk_size > MAX_CHUNK_SIZE:
                raise RemoteProtocolError(
                    "chunk size too large in {!r}".format(bytes(line)))
            if chunk_size == 0:
                self._reading_trailer = True
            else:
                # + 2 is for the \r\n that must come at the end of each chunk
                self._bytes_to_copy = chunk_size + 2

    def read_eof(self):
        raise RemoteProtocolError(
            "peer closed connection without sending complete chunked body")


class Http10Reader:
    def __call__(self, buf, out):
        data = buf.maybe_extract_at_most(len(buf))
        if data is not None:
            out += data
        return False

    def read_eof(self):
        return True


BODY_READERS = {
    "chunked": ChunkedReader,
    "content-length": ContentLengthReader,
    "http/1.0": Http10Reader,
}


class ResponseExtractor:
    """Finds the end of one HTTP/1.1 response, copying it verbatim.

    Args:
        head_request (bool): Whether the response answers a ``HEAD``
            request, in which case it ends right after its headers.

    Attributes:
        status_code (int): The parsed status code, or None before the status
            line has been read.

        content_length (int): The value of the Content-Length header, or
            None if there was none (yet).

        chunked (bool): Whether the response uses chunked framing.

    """
    def __init__(self, head_request=False):
        self.head_request = head_request
        self.status_code = None
        self.content_length = None
        self.chunked = False
        self._state = STATUS_LINE
        self._receive_buffer = ReceiveBuffer()
        self._receive_buffer_closed = False
        self._out = bytearray()
        self._body_reader = None

    @property
    def response(self):
        """The bytes of the response copied so far.

        Once :meth:`extract` has returned :data:`COMPLETE`, this is the
        whole response. If it raised, this is the prefix that was copied
        before the problem was noticed.

        """
        return bytes(self._out)

    @property
    def trailing_data(self):
        """Data that has been received, but is not part of the response.

        Returns a tuple of two things, a byte-string containing the data,
        and a boolean indicating whether the stream has been closed.

        """
        return (bytes(self._receive_buffer), self._receive_buffer_closed)

    @property
    def complete(self):
        return self._state is DONE

    def receive_data(self, data):
        """Add data to the internal receive buffer.

        An empty ``data`` means that the stream has been closed; after that,
        feeding more data is an error.

        """
        if data:
            if self._receive_buffer_closed:
                raise LocalProtocolError(
                    "received close, then received more data?")
            self._receive_buffer += data
        else:
            self._receive_buffer_closed = True

    def extract(self):
        """Copy as much of the response as the buffered data allows.

        Returns :data:`COMPLETE` once the whole response has been copied,
        or :data:`NEED_DATA` if more data has to be passed to
        :meth:`receive_data` first.

        Raises:
            RemoteProtocolError: The response can't be framed. The
                extractor is unusable afterwards.

        """
        if self._state is ERROR:
            raise LocalProtocolError(
                "Can't extract a response after a framing error")
        try:
            return self._extract()
        except RemoteProtocolError:
            self._state = ERROR
            raise

    def _next_line(self, what):
        line = self._receive_buffer.maybe_extract_next_line()
        if line is None:
            if self._receive_buffer_closed:
                raise RemoteProtocolError(
                    "peer closed connection while sending {}".format(what))
            return None
        self._out += line
        return _strip_terminator(line)

    def _process_header(self, line):
        name, sep, value = line.partition(b":")
        if not sep:
            return
        name = name.lower()
        if name == b"content-length":
            if self.content_length is not None:
                raise RemoteProtocolError(
                    "multiple Content-Length headers found")
            value = value.strip()
            validate(content_length_re, value,
                     "invalid Content-Length in {!r}", bytes(line))
            self.content_length = int(value)
        elif name == b"transfer-encoding":
            codings = value.split(b",")
            self.chunked = codings[-1].strip().lower() == b"chunked"

    def _extract(self):
        if self._state is STATUS_LINE:
            line = self._next_line("status line")
            if line is None:
                return NEED_DATA
            self.status_code = _parse_status_code(line)
            self._state = HEADERS

        if self._state is HEADERS:
            while True:
                line = self._next_line("response headers")
                if line is None:
                    return NEED_DATA
                if not line:
                    break
                self._process_header(line)
            framing_type, args = _body_framing(
                self.head_request, self.status_code,
                self.chunked, self.content_length)
            self._body_reader = BODY_READERS[framing_type](*args)
            self._state = BODY

        if self._state is BODY:
            if self._body_reader(self._receive_buffer, self._out):
                self._state = DONE
            elif self._receive_buffer_closed:
                if self._body_reader.read_eof():
                    self._state = DONE
            else:
                return NEED_DATA

        assert self._state is DONE
        return COMPLETE


async def read_response(stream, extractor, max_recv=MAX_RECV):
    """Drive ``extractor`` with data from ``stream`` until the response ends.

    ``stream`` can be anything with an awaitable ``recv(maxsize)`` method
    that returns b"" at EOF -- a curio socket, or a
    :class:`~rawreq.TimedStream` wrapping one. Nothing past the end of the
    response is read into the output, though a single recv() may have pulled
    some of it into ``extractor.trailing_data``.

    """
    while extractor.extract() is NEED_DATA:
        extractor.receive_data(await stream.recv(max_recv))
    return extractor.response
