#!/usr/bin/env python3
"""tbltranspose: swap the rows and columns of a delimited file."""
import sys
from typing import List, Optional

import pandas as pd

import tblio
from tblio import CustomArgumentParser

__version__ = tblio.__version__


def _setup_arg_parser():
    parser = CustomArgumentParser(
        prog="tbltranspose",
        description="Transpose a delimited file; the header becomes the first column.",
    )
    parser.add_argument("file", nargs="?", default="-", help="Input file, gzip allowed ('-' for stdin).")
    parser.add_argument("-d", "--delim", help="Field delimiter (default: detected from the first line).")
    parser.add_argument("-o", "--output-delim", help="Output delimiter (default: same as input).")
    parser.add_argument("--fill", default="", help="Value for the cells missing from rows shorter than the first line.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def read_rows(path: Optional[str], sep: Optional[str] = None, fill: str = ""):
    """Every line of the file as a list of fields, header included. Returns (rows, sep)."""
    try:
        df, sep, _ = tblio.read_frame(path, sep, header=False, fill=fill)
    except tblio.EmptyInputError:
        return [], sep or "\t"
    return df.values.tolist(), sep


def transpose_rows(rows: List[List[str]], fill: str = "") -> pd.DataFrame:
    """Rows of unequal width are padded with `fill` before transposing."""
    if not rows:
        return pd.DataFrame()
    width = max(len(r) for r in rows)
    padded = [r + [fill] * (width - len(r)) for r in rows]
    return pd.DataFrame(padded, dtype=str).T


def main(argv=None):
    """Main entry point for the script."""
    tblio.restore_sigpipe()
    parser = _setup_arg_parser()
    args = parser.parse_args(argv)
    try:
        rows, sep = read_rows(args.file, tblio.decode_delim(args.delim), args.fill)
        out_sep = tblio.decode_delim(args.output_delim) or sep
        tblio.write_frame(transpose_rows(rows, args.fill), out_sep, is_header=False)
    except (ValueError, OSError) as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
