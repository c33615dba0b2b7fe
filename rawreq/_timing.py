from datetime import datetime, timezone

__all__ = ["TimedStream", "utcnow"]


def utcnow():
    return datetime.now(timezone.utc)


class TimedStream:
    """Wraps a stream, remembering when data first arrived on it.

    Every call is passed straight through to the wrapped stream; the only
    addition is that the first ``recv()`` returning at least one byte stores
    the current time in :attr:`first_read_at`. Later reads leave it alone.

    This records when the first read *completed*, which can be a little
    later than when the first byte hit the socket.

    """
    def __init__(self, stream, clock=utcnow):
        self._stream = stream
        self._clock = clock
        self.first_read_at = None

    async def recv(self, maxsize):
        data = await self._stream.recv(maxsize)
        if data and self.first_read_at is None:
            self.first_read_at = self._clock()
        return data
