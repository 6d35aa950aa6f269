"""
Shared input/output helpers for the tbl* command-line tools.

Reading: delimiter sniffing from the header line, transparent gzip
decompression, header detection, lazy row streaming and whole tables through
pandas. Writing: csv-quoted lines that tolerate a closed pipe. Also hosts the
argument parser class used by every tool so errors look the same everywhere.
"""
import sys
import argparse
import codecs
import csv
import gzip
import io
import os
import re
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

import pandas as pd

__version__ = "1.0.0"

# Candidate delimiters, in the order they are tried against the header line.
DEFAULT_DELIMITERS = ["\t", ",", ";", "|"]

GZIP_MAGIC = b"\x1f\x8b"

_float_re = re.compile(r'^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?\s*$')


class EmptyInputError(ValueError):
    """The input has no lines at all."""


def progress(msg: str):
    sys.stderr.write(str(msg) + "\n")
    sys.stderr.flush()


def is_number(value: str) -> bool:
    """True for plain decimal or scientific notation ('nan'/'inf' are text)."""
    return bool(_float_re.match(value))


# --------------------------
# Argument parsing
# --------------------------
class CustomArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args, **kwargs):
        kwargs.setdefault('formatter_class', argparse.ArgumentDefaultsHelpFormatter)
        super(CustomArgumentParser, self).__init__(*args, **kwargs)

    def error(self, message: str):
        use_color = sys.stderr.isatty() and os.getenv("NO_COLOR") is None
        red, reset = ("\033[91m", "\033[0m") if use_color else ("", "")
        yellowred = "\033[41m" if use_color else ""

        command_prefix = f"[{self.prog}] "
        error_line = f"{yellowred}ERROR:{reset}{red}{command_prefix}{reset} {message[:1].upper() + message[1:]} "

        border = "-" * (len(error_line) + 4)
        sys.stderr.write(f"\n{border}\n  {error_line}\n{border}\n")
        self.exit(2)


def add_input_args(parser: argparse.ArgumentParser):
    """Options every single-input tool shares."""
    parser.add_argument("-d", "--delim", help="Field delimiter (default: detected from the header line).")
    hdr = parser.add_mutually_exclusive_group()
    hdr.add_argument("--header", dest="header", action="store_const", const=True, default=None,
                     help="First line is a header.")
    hdr.add_argument("--noheader", dest="header", action="store_const", const=False,
                     help="First line is data; columns are named col_1..col_n.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress informational messages.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")


def decode_delim(delim: Optional[str]) -> Optional[str]:
    """Turn a command-line delimiter such as '\\t' into the real character."""
    if delim is None:
        return None
    sep = codecs.decode(delim, 'unicode_escape')
    if not sep:
        raise ValueError("Delimiter must not be empty.")
    return sep


# --------------------------
# Reading
# --------------------------
def is_gzip_path(path: Optional[str]) -> bool:
    if not path or path == '-':
        return False
    if path.endswith('.gz'):
        return True
    try:
        with open(path, 'rb') as f:
            return f.read(2) == GZIP_MAGIC
    except OSError:
        return False


@contextmanager
def open_text(path: Optional[str], encoding: str = "utf-8"):
    """
    Open a path for text reading; '-' or None means stdin, gzip is decompressed.

    Leaving the block closes a file but never the process's stdin.
    """
    if path and path != '-':
        if not os.path.exists(path):
            raise FileNotFoundError(f"File not found: {path}")
        if is_gzip_path(path):
            f = gzip.open(path, 'rt', encoding=encoding, errors='replace')
        else:
            f = open(path, 'r', encoding=encoding, errors='replace')
        with f:
            yield f
        return

    raw = sys.stdin.buffer
    head = raw.peek(2)[:2] if hasattr(raw, 'peek') else b""
    if head == GZIP_MAGIC:
        # GzipFile given a fileobj leaves that fileobj open when closed.
        with io.TextIOWrapper(gzip.GzipFile(fileobj=raw), encoding=encoding, errors='replace') as f:
            yield f
        return
    f = io.TextIOWrapper(raw, encoding=encoding, errors='replace')
    try:
        yield f
    finally:
        f.detach()


def detect_delimiter(header_line: str, candidates: Optional[List[str]] = None) -> str:
    """Pick the first candidate delimiter that occurs in the header line."""
    for sep in candidates or DEFAULT_DELIMITERS:
        if sep in header_line:
            return sep
    raise ValueError("Cannot determine the field delimiter from the header line; use -d/--delim.")


def split_line(line: str, sep: str) -> List[str]:
    return line.rstrip('\r\n').split(sep)


def looks_like_header(fields: List[str]) -> bool:
    """A header has no empty and no numeric field."""
    return all(f.strip() != "" and not is_number(f) for f in fields)


def positional_names(n: int) -> List[str]:
    return [f"col_{i+1}" for i in range(n)]


def read_header(stream, sep: Optional[str] = None,
                header: Optional[bool] = None) -> Tuple[str, List[str], Optional[List[str]]]:
    """
    Consume the first line of `stream` and work out the table layout.

    Returns (sep, column_names, first_row). `first_row` is the split first line
    when it turned out to be data (no header), else None. `header=None` means
    auto-detect.
    """
    line = stream.readline()
    if not line:
        raise EmptyInputError("Input is empty.")
    first = line.rstrip('\r\n')
    sep = sep or detect_delimiter(first)
    fields = first.split(sep)
    if header is None:
        header = looks_like_header(fields)
    if header:
        return sep, fields, None
    return sep, positional_names(len(fields)), fields


def iter_rows(stream, sep: str, start_line: int = 2,
              skip_blank: bool = False) -> Iterator[Tuple[int, List[str]]]:
    """Yield (line_number, fields) for each remaining line, lazily."""
    for lineno, line in enumerate(stream, start=start_line):
        if skip_blank and not line.rstrip('\r\n'):
            continue
        yield lineno, split_line(line, sep)


def read_frame(path: Optional[str], sep: Optional[str] = None,
               header: Optional[bool] = None, fill: str = "") -> Tuple[pd.DataFrame, str, bool]:
    """
    Read a whole table as strings. Returns (df, sep, has_header).

    Fields follow CSV quoting rules ("a, b" is one field, "" escapes a quote).
    Cells stay text (no NA conversion) so output reproduces the input values.
    Short rows are padded with `fill`; a row wider than the first line is an
    error.
    """
    with open_text(path) as f:
        content = f.read()
    if not content.strip():
        raise EmptyInputError("Input is empty.")
    sep = sep or detect_delimiter(content.split("\n", 1)[0].rstrip('\r'))
    single = len(sep) == 1
    try:
        df = pd.read_csv(
            io.StringIO(content), sep=sep if single else re.escape(sep), header=None,
            engine='c' if single else 'python', dtype=str, keep_default_na=False,
            quotechar='"', doublequote=True, quoting=csv.QUOTE_MINIMAL, skip_blank_lines=True,
        )
    except pd.errors.ParserError as e:
        raise ValueError(f"Malformed table: {str(e).strip()}") from e
    df = df.fillna(fill)
    fields = [str(v) for v in df.iloc[0]]
    if header is None:
        header = looks_like_header(fields)
    if header:
        df = df.iloc[1:].reset_index(drop=True)
        df.columns = fields
    else:
        df.columns = positional_names(len(fields))
    return df, sep, bool(header)


# --------------------------
# Writing
# --------------------------
def write_frame(df: pd.DataFrame, sep: str, is_header: bool = True, out=None, na_rep: str = ""):
    """Writes the DataFrame through csv.writer; a closed pipe ends output quietly."""
    if df is None: return
    if len(sep) != 1:
        raise ValueError("Output delimiter must be a single character.")
    out = out or sys.stdout
    try:
        writer = csv.writer(
            out, delimiter=sep, quotechar='"', escapechar=None, doublequote=True,
            lineterminator='\n', quoting=csv.QUOTE_MINIMAL
        )
        if is_header:
            writer.writerow([str(c) for c in df.columns])
        for row in df.itertuples(index=False, name=None):
            writer.writerow([na_rep if pd.isna(item) else item for item in row])
    except BrokenPipeError:
        try: sys.stdout.close()
        except OSError: pass


def restore_sigpipe():
    try:
        import signal
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)
    except (ImportError, AttributeError):
        pass
