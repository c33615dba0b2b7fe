# The command line front-end: httpipe lines in on stdin, results out on
# stdout.

import argparse
import os
import re
import sys

import curio
import structlog

from ._logging import LOG_LEVELS, configure_logging
from ._pipeline import Pipeline
from ._records import RecordError, decode_request, encode_result
from ._version import __version__

__all__ = ["main", "parse_duration"]

logger = structlog.get_logger(__name__)

USAGE_DETAILS = """\
rawreq expects input via standard input in the httpipe format. At least
the "host" and "req" fields must be present. If the "tls" field is
missing, TLS (HTTPS) will be used. If the "port" field is missing, port
80 will be used if TLS is not used and port 443 otherwise.

rawreq will make requests in the order they arrived via standard input.
However, if the value of the -p flag is greater than 1, the order of the
output lines may not match the input.

Example:
echo '{"host":"x.com","req":"GET / HTTP/1.1\\r\\nHost: x.com\\r\\n\\r\\n"}' | rawreq
"""

# Same spelling as Go-style durations ("1m30s", "250ms"); a bare number is
# taken as seconds.
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_duration_part_re = re.compile(
    r"(?P<value>[0-9]*\.?[0-9]+)(?P<unit>ns|us|µs|ms|s|m|h)")
_bare_number_re = re.compile(r"[0-9]*\.?[0-9]+")


def parse_duration(text):
    """Parse ``"5s"``, ``"1m30s"``, ``"2.5"`` etc. into seconds."""
    text = text.strip()
    if _bare_number_re.fullmatch(text):
        seconds = float(text)
    else:
        pos = 0
        seconds = 0.0
        while pos < len(text):
            match = _duration_part_re.match(text, pos)
            if match is None:
                raise argparse.ArgumentTypeError(
                    "invalid duration {!r}".format(text))
            seconds += float(match["value"]) * _DURATION_UNITS[match["unit"]]
            pos = match.end()
    if seconds <= 0:
        raise argparse.ArgumentTypeError(
            "duration must be positive, not {!r}".format(text))
    return seconds


def _positive_int(text):
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(
            "invalid integer {!r}".format(text))
    if value < 1:
        raise argparse.ArgumentTypeError(
            "must be at least 1, not {}".format(value))
    return value


def build_parser(environ=os.environ):
    # String defaults go through type= too, so environment overrides get
    # the same validation as flags.
    parser = argparse.ArgumentParser(
        prog="rawreq",
        description="Send raw HTTP/1.1 requests and capture the responses.",
        epilog=USAGE_DETAILS,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-t", dest="timeout", type=parse_duration,
        default=environ.get("RAWREQ_TIMEOUT", "5s"),
        help="Timeout for requests (default: %(default)s).")
    parser.add_argument(
        "-p", dest="parallel", type=_positive_int,
        default=environ.get("RAWREQ_PARALLEL", "1"),
        help="Number of parallel requests (default: %(default)s).")
    parser.add_argument(
        "--log-level", type=str.upper, choices=LOG_LEVELS,
        default=environ.get("RAWREQ_LOG_LEVEL", "WARNING"),
        help="Verbosity of the log written to stderr "
             "(default: %(default)s).")
    parser.add_argument(
        "--version", action="version",
        version="%(prog)s {}".format(__version__))
    return parser


def read_requests(lines):
    for line in lines:
        if not line.strip():
            continue
        yield decode_request(line)


class ResultWriter:
    def __init__(self, stream):
        self._stream = stream

    def __call__(self, result):
        line = encode_result(result).encode("utf-8") + b"\n"
        self._stream.write(line)
        self._stream.flush()


async def _run(pipeline, stdin, stdout):
    try:
        await pipeline.run(read_requests(stdin), ResultWriter(stdout))
    except RecordError as exc:
        logger.error("could not decode input", error=str(exc))
        return 1
    except OSError as exc:
        logger.error("could not read input or write output", error=str(exc))
        return 1
    return 0


def main(argv=None, stdin=None, stdout=None):
    args = build_parser().parse_args(argv)
    if stdin is None:
        stdin = sys.stdin.buffer
    if stdout is None:
        stdout = sys.stdout.buffer
    configure_logging(args.log_level)

    pipeline = Pipeline(concurrency=args.parallel, timeout=args.timeout)
    return curio.run(_run, pipeline, stdin, stdout)
