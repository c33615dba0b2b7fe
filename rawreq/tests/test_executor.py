import gc
import time
import warnings

import curio
import pytest

from .._errors import *
from .._executor import RequestExecutor
from .._records import RequestDescriptor

from .helpers import (
    serve, respond_with, unused_port, server_tls_context, client_tls_context,
)

GET = b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n"
HEAD = b"HEAD / HTTP/1.1\r\nHost: localhost\r\n\r\n"

OK_RESPONSE = (b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n"
               b"Content-Length: 10\r\n\r\nAll good.\n")


def local(port, req=GET):
    return RequestDescriptor(host="127.0.0.1", req=req, port=port, tls=False)


def run_one(handler, timeout=5, req=GET):
    async def main():
        port = await serve(handler)
        executor = RequestExecutor(timeout)
        return await executor.execute(local(port, req))
    return curio.run(main)


def test_execute_keep_alive():
    start = time.monotonic()
    result = run_one(respond_with(OK_RESPONSE, keep_open=True), timeout=5)
    # Done as soon as the body is complete, not when the server gives up
    assert time.monotonic() - start < 4
    assert result.ok
    assert result.errno == 0
    assert result.error is None
    assert result.response == OK_RESPONSE
    assert result.sent_at is not None
    assert result.ping is not None and result.ping >= 0


def test_execute_chunked():
    response = (b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n"
                b"a\r\nAll good.\n\r\n0\r\n\r\n")
    result = run_one(respond_with(response, keep_open=True))
    assert result.ok
    assert result.response == response


def test_execute_head():
    response = b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\n"
    result = run_one(respond_with(response, keep_open=True), req=HEAD)
    assert result.ok
    assert result.response == response


def test_execute_until_close():
    response = b"HTTP/1.1 200 OK\r\n\r\nsome body"
    result = run_one(respond_with(response))
    assert result.ok
    assert result.response == response


def test_execute_refused():
    async def main():
        executor = RequestExecutor(5)
        return await executor.execute(local(unused_port()))

    result = curio.run(main)
    assert result.errno == ERRNO_CONNECTION_REFUSED
    assert result.error.startswith("connect: ")
    assert result.response == b""
    assert result.sent_at is None
    assert result.ping is None


def test_execute_silent_server():
    result = run_one(respond_with(b"", keep_open=True), timeout=0.5)
    assert result.errno == ERRNO_TIMEOUT
    assert result.error == "read: timeout exceeded"
    assert result.response == b""
    assert result.sent_at is not None
    assert result.ping is None


def test_execute_stalled_response():
    partial = b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nAll"
    result = run_one(respond_with(partial, keep_open=True), timeout=0.5)
    assert result.errno == ERRNO_TIMEOUT
    assert result.response == partial
    assert result.ping is not None


def test_execute_slow_server():
    # The deadline covers the whole exchange
    result = run_one(respond_with(OK_RESPONSE, delay=2), timeout=0.5)
    assert result.errno == ERRNO_TIMEOUT
    assert result.response == b""


def test_execute_framing_error():
    response = b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n"
    result = run_one(respond_with(response, keep_open=True))
    assert result.errno == ERRNO_READ_FAILED
    assert result.error.startswith("read: ")
    assert result.response == response


def test_execute_truncated_body():
    partial = b"HTTP/1.1 200 OK\r\nContent-Length: 10\r\n\r\nAll"
    result = run_one(respond_with(partial))
    assert result.errno == ERRNO_READ_FAILED
    assert "7 bytes missing" in result.error
    assert result.response == partial


def test_execute_tls_to_plain_server():
    async def handler(client):
        # Answer the ClientHello with plain HTTP
        await client.sendall(b"HTTP/1.1 400 Bad Request\r\n\r\n")
        await curio.sleep(1)

    async def main():
        port = await serve(handler)
        executor = RequestExecutor(2)
        request = RequestDescriptor(host="127.0.0.1", req=GET, port=port,
                                    tls=True)
        return await executor.execute(request)

    result = curio.run(main)
    assert result.errno == ERRNO_UNCLASSIFIED
    assert result.error.startswith("connect: ")
    assert result.response == b""
    assert result.sent_at is None


def test_execute_unresolved():
    async def main():
        executor = RequestExecutor(1)
        with pytest.raises(ValueError):
            await executor.execute(
                RequestDescriptor(host="127.0.0.1", req=GET))
        return True

    assert curio.run(main)


def test_executor_is_reusable():
    async def main():
        port = await serve(respond_with(OK_RESPONSE))
        executor = RequestExecutor(5)
        first = await executor.execute(local(port))
        second = await executor.execute(local(port))
        return first, second

    first, second = curio.run(main)
    assert first.ok and second.ok
    assert first.response == second.response == OK_RESPONSE


def test_execute_tls():
    async def main():
        port = await serve(respond_with(OK_RESPONSE, keep_open=True),
                           tls_context=server_tls_context())
        executor = RequestExecutor(5, ssl_context=client_tls_context())
        request = RequestDescriptor(host="127.0.0.1", req=GET, port=port,
                                    tls=True)
        first = await executor.execute(request)
        # The context is shared, not used up
        second = await executor.execute(request)
        return first, second

    first, second = curio.run(main)
    for result in [first, second]:
        assert result.ok
        assert result.response == OK_RESPONSE
        assert result.ping is not None


def test_execute_tls_untrusted_certificate():
    async def main():
        port = await serve(respond_with(OK_RESPONSE, keep_open=True),
                           tls_context=server_tls_context())
        # The default context doesn't know our test CA
        executor = RequestExecutor(5)
        request = RequestDescriptor(host="127.0.0.1", req=GET, port=port,
                                    tls=True)
        return await executor.execute(request)

    result = curio.run(main)
    assert result.errno == ERRNO_TLS_VERIFICATION
    assert result.error.startswith("connect: ")
    assert result.response == b""
    assert result.sent_at is None


def test_execute_tls_handshake_timeout_closes_socket():
    closed = []

    async def handler(client):
        # Swallow the ClientHello, never answer it
        try:
            while await client.recv(65536):
                pass
        except ConnectionError:
            pass
        closed.append(True)

    async def main():
        port = await serve(handler)
        executor = RequestExecutor(0.3)
        request = RequestDescriptor(host="127.0.0.1", req=GET, port=port,
                                    tls=True)
        result = await executor.execute(request)
        # The server notices the close right away
        async with curio.ignore_after(2):
            while not closed:
                await curio.sleep(0.01)
        return result

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = curio.run(main)
        gc.collect()

    assert result.errno == ERRNO_TIMEOUT
    assert result.error == "connect: timeout exceeded"
    assert closed == [True]
    assert not [w for w in caught if issubclass(w.category, ResourceWarning)]
