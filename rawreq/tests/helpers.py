import os
import socket as std_socket
import ssl

import curio
from curio import socket
from curio.ssl import CurioSSLContext

from .._extractor import ResponseExtractor, COMPLETE, NEED_DATA

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
# A CA, and a certificate for 127.0.0.1 / localhost that it signed
CA_PEM = os.path.join(DATA_DIR, "ca.pem")
SERVER_PEM = os.path.join(DATA_DIR, "server.pem")


def te(data, expected, head_request=False, delimited=True):
    # Pushes data through a ResponseExtractor in various ways, and checks
    # that the output is always `expected`. `delimited` says whether the
    # response can end before EOF (i.e. isn't "read until close").

    # Simple: everything at once, then EOF
    extractor = ResponseExtractor(head_request=head_request)
    extractor.receive_data(data)
    extractor.receive_data(b"")
    assert extractor.extract() is COMPLETE
    assert extractor.response == expected

    # Incrementally growing buffer
    extractor = ResponseExtractor(head_request=head_request)
    for i in range(len(data)):
        extractor.receive_data(data[i:i + 1])
        state = extractor.extract()
        if i + 1 < len(expected) or not delimited:
            assert state is NEED_DATA
        else:
            assert state is COMPLETE
            break
    if not delimited:
        extractor.receive_data(b"")
        assert extractor.extract() is COMPLETE
    assert extractor.response == expected

    # Extra
    if delimited:
        extractor = ResponseExtractor(head_request=head_request)
        extractor.receive_data(data + b"trailing")
        assert extractor.extract() is COMPLETE
        assert extractor.response == expected
        assert extractor.trailing_data == (
            data[len(expected):] + b"trailing", False)

    return extractor


class FakeStream:
    # Hands out pre-arranged chunks from recv(), then b"" forever.
    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.recv_calls = 0

    async def recv(self, maxsize):
        self.recv_calls += 1
        if not self._chunks:
            return b""
        chunk = self._chunks.pop(0)
        if len(chunk) > maxsize:
            self._chunks.insert(0, chunk[maxsize:])
            chunk = chunk[:maxsize]
        return chunk


async def read_request(client):
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = await client.recv(65536)
        if not chunk:
            break
        data += chunk
    return data


def respond_with(response, *, delay=0, keep_open=False):
    async def handler(client):
        await read_request(client)
        if delay:
            await curio.sleep(delay)
        await client.sendall(response)
        if keep_open:
            await curio.sleep(60)
    return handler


async def serve(handler, tls_context=None):
    # Starts a throwaway server on localhost, which runs `handler(client)`
    # for each connection, over TLS if `tls_context` is given. Returns the
    # port. Everything gets cancelled when the curio kernel shuts down.
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    sock.listen(64)
    port = sock.getsockname()[1]

    async def handle(client):
        if tls_context is not None:
            client = await CurioSSLContext(tls_context).wrap_socket(
                client, server_side=True, do_handshake_on_connect=False)
            try:
                await client.do_handshake()
            except OSError:
                # The client didn't like our certificate
                await client.close()
                return
        async with client:
            try:
                await handler(client)
            except ssl.SSLError:
                # Over TLS 1.3, a rejected certificate shows up here instead
                pass

    async def accept_loop():
        async with sock:
            while True:
                client, _ = await sock.accept()
                await curio.spawn(handle, client, daemon=True)

    await curio.spawn(accept_loop, daemon=True)
    return port


def server_tls_context():
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(SERVER_PEM)
    return context


def client_tls_context():
    # Trusts the CA that signed SERVER_PEM, and nothing else
    return ssl.create_default_context(cafile=CA_PEM)


def unused_port():
    # Bind and close right away; nothing listens there afterwards.
    s = std_socket.socket(std_socket.AF_INET, std_socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
