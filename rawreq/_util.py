__all__ = ["ProtocolError", "LocalProtocolError", "RemoteProtocolError",
           "validate", "make_sentinel"]

class ProtocolError(Exception):
    """Exception indicating that an HTTP response could not be framed.

    This as an abstract base class, with two concrete base classes:
    :exc:`LocalProtocolError`, which indicates that you used an extractor in
    a way that makes no sense (e.g. feeding it more data after telling it the
    stream had ended), and :exc:`RemoteProtocolError`, which indicates that
    the remote peer sent something we can't find the end of (a malformed
    status line, a bad chunk size, a stream that stops in the middle of a
    body, ...).

    """
    def __init__(self, msg):
        if type(self) is ProtocolError:
            raise TypeError("tried to directly instantiate ProtocolError")
        Exception.__init__(self, msg)


class LocalProtocolError(ProtocolError):
    pass

class RemoteProtocolError(ProtocolError):
    pass


def validate(regex, data, msg="malformed data", *format_args):
    match = regex.fullmatch(data)
    if not match:
        if format_args:
            msg = msg.format(*format_args)
        raise RemoteProtocolError(msg)
    return match.groupdict()


# Sentinel values
#
# - Inherit identity-based comparison and hashing from object
# - Have a nice repr
# - Have a *bonus property*: type(sentinel) is sentinel
#
# The bonus property is useful if you want to take the return value from
# next_event() and do some sort of dispatch based on type(event).
class _SentinelBase(type):
    def __repr__(self):
        return self.__name__

def make_sentinel(name):
    cls = _SentinelBase(name, (_SentinelBase,), {})
    cls.__class__ = cls
    return cls
