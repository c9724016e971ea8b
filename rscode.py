#!/usr/bin/env python3
r"""
rscode.py

En- or decode funky chars in filenames the way rsync does:
- Bytes that are not printable 7-bit ASCII become  \#ooo  (octal codepoint)
- A literal backslash that looks like the start of  \#ddd  is escaped too,
  so  \#123  becomes  \#134#123  (even if ddd contains 8 or 9)
- Decoding turns every  \#ooo  with real octal digits back into its byte

Usage:
  # Encode file names given as arguments
  rscode.py 'weird name' "$(printf 'tab\there')"

  # Encode NUL-terminated names from stdin, one encoded name per line
  find . -print0 | rscode.py -0

  # Decode one name per line from a file
  rscode.py -d -f names.txt
"""

import argparse
import enum
import os
import re
import sys
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional, Tuple

PROG = "rscode"
VERSION = "0.1.1"

# rsync treats any three decimal digits after \# as an escape when encoding,
# but only real octal digits are turned back into a byte.
LOOKALIKE_RE = re.compile(rb'\\#[0-9]{3}')
ESCAPE_RE = re.compile(rb'\\#([0-7]{3})')

PRINTABLE_MIN = 0x20
PRINTABLE_MAX = 0x7e

CHUNK_SIZE = 1024


def print_usage_script(prog: str, file=None) -> None:
    msg = f"""\
==================================================================
==           rscode - en/decode filenames rsync-style           ==
==================================================================
usage: {prog} [-de0hV -f <file>] [ <input> ... ]

Converts funky chars the way rsync does for filenames.
The encoding process translates nonprintable characters
  into ``\\#ooo'', where ``ooo'' is the octal codepoint value.
  In literal ``\\#ooo'' tokens, the backslash is in turn encoded
  in the same way, i.e. ``\\#123'' becomes ``\\#134#123'', even if
  ``ooo'' wasn't a legitimate octal number (i.e. may contain 8, 9)
The decoding process does the inverse operation.

Parameter summary:
\t-d: Decode.
\t-e: Encode.  This is the default.
\t-f <file>: Read input to en/decode from <file> instead of stdin
\t-0: When encoding, expect input strings to be \\0-terminated
\t    rather than by \\n.  When decoding, terminate output strings
\t    by \\0 instead of \\n
\t-h: Display this usage statement and terminate
\t-V: Print version information

If no arguments and no -f is given, we read from stdin.
If arguments are given, we ignore stdin and use the args as input

Version: {VERSION}
"""
    print(msg, end="", file=file or sys.stdout)


def warn(msg: str) -> None:
    """Print a non-fatal diagnostic to stderr, prefixed with the program name."""
    print(f"{PROG}: {msg}", file=sys.stderr)


# --- Transcoding ---

def is_escape(record: bytes, pos: int = 0, strict: bool = True) -> bool:
    """Tell whether record[pos:] starts with an rsync-style escape  \\#ooo.

    With strict=False any decimal digit counts, which is what rsync checks
    before deciding a literal backslash has to be escaped.
    """
    pattern = ESCAPE_RE if strict else LOOKALIKE_RE
    return pattern.match(record, pos) is not None


def encode(record: bytes) -> bytes:
    out = bytearray()
    for i, b in enumerate(record):
        if not PRINTABLE_MIN <= b <= PRINTABLE_MAX or is_escape(record, i, strict=False):
            out += b'\\#%03o' % b
        else:
            out.append(b)
    return bytes(out)


def _unescape(match) -> bytes:
    # \#400 and up do not fit a byte; keep the low 8 bits like putchar would
    return bytes([int(match.group(1), 8) & 0xff])


def decode(record: bytes) -> bytes:
    """Replace every strict  \\#ooo  token by the byte it stands for."""
    return ESCAPE_RE.sub(_unescape, record)


class Mode(enum.Enum):
    ENCODE = "encode"
    DECODE = "decode"

    @property
    def transcoder(self):
        return encode if self is Mode.ENCODE else decode


# --- Configuration ---

@dataclass(frozen=True)
class Config:
    mode: Mode = Mode.ENCODE
    input_path: Optional[str] = None
    nul_terminated: bool = False
    names: Tuple[str, ...] = ()

    @property
    def input_terminator(self) -> bytes:
        # -0 only changes how encode input is split
        return b'\0' if self.nul_terminated and self.mode is Mode.ENCODE else b'\n'

    @property
    def output_terminator(self) -> bytes:
        # ...and only how decode output is terminated
        return b'\0' if self.nul_terminated and self.mode is Mode.DECODE else b'\n'


class RscodeArgumentParser(argparse.ArgumentParser):
    """Report bad command lines with the full usage block, like -h does."""

    def error(self, message):
        print(f"{PROG}: error: {message}", file=sys.stderr)
        print_usage_script(PROG, file=sys.stderr)
        raise SystemExit(1)


def split_end_of_options(argv: List[str]) -> Tuple[List[str], List[str]]:
    """Split argv into options and the words after the first '--'."""
    if "--" in argv:
        i = argv.index("--")
        return argv[:i], argv[i + 1:]
    return argv, []


def build_parser() -> argparse.ArgumentParser:
    ap = RscodeArgumentParser(
        prog=PROG,
        description="En/decode filenames rsync-style.",
        add_help=False
    )
    ap.add_argument("-e", dest="decode", action="store_false", default=False,
                    help="Encode. This is the default.")
    ap.add_argument("-d", dest="decode", action="store_true",
                    help="Decode.")
    ap.add_argument("-f", dest="input_path", metavar="FILE",
                    help="Read input from FILE instead of stdin ('-' is stdin).")
    ap.add_argument("-0", dest="nul", action="store_true",
                    help="NUL-terminated encode input / decode output.")
    ap.add_argument("-h", dest="usage", action="store_true",
                    help="Display the usage statement and exit.")
    ap.add_argument("-V", dest="version", action="store_true",
                    help="Print version information and exit.")
    ap.add_argument("names", nargs="*", metavar="input",
                    help="Strings to en/decode; stdin is ignored if any are given.")
    return ap


def parse_args(argv: Optional[List[str]] = None) -> Config:
    """Parse the command line into a Config, exiting on -h, -V and conflicts."""
    if argv is None:
        argv = sys.argv[1:]
    # parse_intermixed_args drops whatever follows '--', so keep it aside
    options, literal_names = split_end_of_options(list(argv))
    args = build_parser().parse_intermixed_args(options)
    args.names = list(args.names or []) + literal_names

    if args.usage:
        print_usage_script(PROG)
        raise SystemExit(0)
    if args.version:
        print(f"{PROG} v{VERSION}")
        raise SystemExit(0)

    if args.names and args.input_path is not None:
        raise SystemExit(f"{PROG}: error: arguments and -f present, wat do?!")

    mode = Mode.DECODE if args.decode else Mode.ENCODE
    nul = args.nul
    if args.names and mode is Mode.ENCODE and nul:
        warn("warning: ignoring -0 because arguments are provided")
        nul = False

    return Config(mode=mode, input_path=args.input_path,
                  nul_terminated=nul, names=tuple(args.names))


# --- Input ---

def open_input(path: Optional[str]) -> BinaryIO:
    """Open the stream records are read from; None and '-' mean stdin."""
    if path is None or path == "-":
        return sys.stdin.buffer
    try:
        return open(path, "rb")
    except OSError as e:
        raise SystemExit(f"{PROG}: open {path}: {e.strerror or e}")


def read_records(stream: BinaryIO, terminator: bytes = b'\n',
                 chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield terminator-separated records from a binary stream.

    Records are yielded as soon as their terminator has been read, so an
    interactive producer sees each result right away. Unterminated data at
    the end of the stream is still yielded, after a warning.
    """
    read = getattr(stream, "read1", stream.read)
    buf = bytearray()
    while True:
        try:
            chunk = read(chunk_size)
        except OSError as e:
            raise SystemExit(f"{PROG}: read: {e.strerror or e}")
        if not chunk:
            break
        try:
            buf += chunk
        except MemoryError:
            raise SystemExit(f"{PROG}: buffer: out of memory")

        start = 0
        while True:
            end = buf.find(terminator, start)
            if end < 0:
                break
            yield bytes(buf[start:end])
            start = end + 1
        del buf[:start]

    if buf:
        warn("warning: terminator missing on last input entry")
        yield bytes(buf)


# --- Output ---

def emit(out: BinaryIO, data: bytes, terminator: bytes) -> None:
    out.write(data + terminator)
    out.flush()


def main(argv: Optional[List[str]] = None) -> None:
    config = parse_args(argv)
    transcode = config.mode.transcoder
    out = sys.stdout.buffer

    if config.names:
        # fsencode gives back the raw bytes of names that were not valid text
        for name in config.names:
            emit(out, transcode(os.fsencode(name)), config.output_terminator)
        return

    stream = open_input(config.input_path)
    try:
        for record in read_records(stream, config.input_terminator):
            emit(out, transcode(record), config.output_terminator)
    finally:
        if stream is not sys.stdin.buffer:
            stream.close()


if __name__ == "__main__":
    main()
