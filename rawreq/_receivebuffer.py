__all__ = ["ReceiveBuffer"]


# Operations we want to support:
# - find the next \n (a preceding \r stays part of the line, because we
#   reproduce everything verbatim), or wait until there is one
# - read at-most-N bytes
# - hand back whatever is left over once the response has ended
# Goals:
# - on average, do this fast
# - worst case, do this in O(n) where n is the number of bytes processed
# Plan:
# - store bytearray and how far we've searched for a line terminator
# - use the how-far-we've-searched data to avoid rescanning
#
# Deleting the initial n bytes from a bytearray is amortized O(n), thanks to
# some excellent work by Antoine Martin:
#
#     https://bugs.python.org/issue19087
#
# so unlike older versions of this code we don't need to track an offset and
# compress() by hand.


class ReceiveBuffer:
    def __init__(self):
        self._data = bytearray()
        self._next_line_search = 0

    def __iadd__(self, byteslike):
        self._data += byteslike
        return self

    def __bool__(self):
        return bool(len(self))

    def __len__(self):
        return len(self._data)

    # for @property trailing_data
    def __bytes__(self):
        return bytes(self._data)

    def _extract(self, count):
        # extracting an initial slice of the data buffer and return it
        out = self._data[:count]
        del self._data[:count]

        self._next_line_search = 0

        return out

    def maybe_extract_at_most(self, count):
        """
        Extract at most ``count`` bytes from the buffer.
        """
        out = self._data[:count]
        if not out:
            return None

        return self._extract(count)

    def maybe_extract_next_line(self):
        """
        Extract the first line, terminator included, if it is completed in
        the buffer.
        """
        # Only search in buffer space that we've not already looked at.
        idx = self._data.find(b"\n", self._next_line_search)

        if idx == -1:
            self._next_line_search = len(self._data)
            return None

        # + 1 is to compensate len(b"\n")
        return self._extract(idx + 1)
