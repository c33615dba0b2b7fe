# Send raw HTTP/1.1 requests, many at once, and capture each response exactly
# as it came over the wire -- without waiting for the server to close the
# connection. The framing logic (_extractor.py) does no I/O of its own;
# everything that touches the network runs on curio.

from ._util import ProtocolError, LocalProtocolError, RemoteProtocolError
from ._extractor import *
from ._timing import *
from ._errors import *
from ._records import *
from ._executor import *
from ._pipeline import *
from ._version import __version__

from . import _extractor, _timing, _errors, _records, _executor, _pipeline

__all__ = ["ProtocolError", "LocalProtocolError", "RemoteProtocolError"]
__all__ += _extractor.__all__
__all__ += _timing.__all__
__all__ += _errors.__all__
__all__ += _records.__all__
__all__ += _executor.__all__
__all__ += _pipeline.__all__
