#!/usr/bin/env python3
"""
tbljoin: join two delimited files on the columns they have in common.

Key columns default to every header name both files share. The result is
written with the key columns first, followed by the remaining columns of the
left file and then of the right file.
"""
import sys
import shlex
from typing import List, Optional

import natsort
import pandas as pd

import tblio
from tblio import CustomArgumentParser

__version__ = tblio.__version__

JOIN_TYPES = ["inner", "left", "right", "outer"]


def _setup_arg_parser():
    parser = CustomArgumentParser(
        prog="tbljoin",
        description="Join two delimited files on their common key columns.",
        epilog="Example: tbljoin --how left -k sample_id samples.tsv counts.tsv.gz",
    )
    parser.add_argument("left", help="Left input file (gzip allowed, '-' for stdin).")
    parser.add_argument("right", help="Right input file (gzip allowed).")
    parser.add_argument("-k", "--keys", help="Comma-separated key columns (default: all shared column names).")
    parser.add_argument("--how", choices=JOIN_TYPES, default="inner", help="Join type.")
    parser.add_argument("-o", "--output-delim", help="Output delimiter (default: the left file's).")
    parser.add_argument("--suffixes", default="_x,_y",
                        help="Suffixes for non-key columns present in both files.")
    parser.add_argument("--null", default="", help="Fill value for missing fields in outer joins.")
    parser.add_argument("--sort", action="store_true", help="Natural-sort the output by key.")
    parser.add_argument("--print-cmd", action="store_true",
                        help="Print an equivalent sort/join shell pipeline (single key, bash) instead of joining.")
    tblio.add_input_args(parser)
    return parser


def common_keys(left_columns, right_columns) -> List[str]:
    right = set(right_columns)
    return [c for c in left_columns if c in right]


def resolve_keys(keys_opt: Optional[str], left_columns, right_columns) -> List[str]:
    if keys_opt:
        keys = [k.strip() for k in keys_opt.split(",") if k.strip()]
    else:
        keys = common_keys(left_columns, right_columns)
        if not keys:
            raise ValueError("The files share no column names; specify the keys with -k/--keys.")
    for side, cols in (("left", left_columns), ("right", right_columns)):
        missing = [k for k in keys if k not in cols]
        if missing:
            raise ValueError(f"Key column(s) {missing} not found in the {side} file. Available: {list(cols)}")
    return keys


def join_frames(left_df: pd.DataFrame, right_df: pd.DataFrame, keys: List[str], how: str = "inner",
                suffixes=("_x", "_y"), sort: bool = False) -> pd.DataFrame:
    """Merges two string tables on `keys`; key columns come first in the result."""
    if how not in JOIN_TYPES:
        raise ValueError(f"Unknown join type '{how}'. Choose from {JOIN_TYPES}.")
    left_indexed = left_df.set_index(keys)
    right_indexed = right_df.set_index(keys)
    merged = left_indexed.join(right_indexed, how=how, lsuffix=suffixes[0], rsuffix=suffixes[1]).reset_index()

    other_cols = [c for c in merged.columns if c not in keys]
    merged = merged[keys + other_cols]
    if sort and not merged.empty:
        key_tuples = list(zip(*(merged[k].astype(str) for k in keys)))
        merged = merged.iloc[natsort.index_natsorted(key_tuples)].reset_index(drop=True)
    return merged


def _sorted_source(path: str, sep: str, col: int) -> str:
    reader = f"gzip -dc {shlex.quote(path)}" if tblio.is_gzip_path(path) else f"cat {shlex.quote(path)}"
    sort = shlex.join(["sort", "-t", sep, "-k", f"{col},{col}"])
    return f"<({reader} | head -n 1; {reader} | tail -n +2 | LC_ALL=C {sort})"


def join_command(left: str, right: str, sep: str, left_col: int, right_col: int, how: str = "inner") -> str:
    """bash pipeline joining on one 1-based column per file with coreutils sort/join."""
    if len(sep) != 1:
        raise ValueError(f"join needs a single-character delimiter, got {sep!r}.")
    if left == "-" or right == "-":
        raise ValueError("--print-cmd needs both inputs as files.")
    cmd = ["join", "--header", "-t", sep, "-1", str(left_col), "-2", str(right_col)]
    if how in ("left", "outer"):
        cmd += ["-a", "1"]
    if how in ("right", "outer"):
        cmd += ["-a", "2"]
    return "LC_ALL=C " + " ".join([shlex.join(cmd), _sorted_source(left, sep, left_col),
                                   _sorted_source(right, sep, right_col)])


def _header_of(path: str, sep: Optional[str], header: Optional[bool]):
    with tblio.open_text(path) as f:
        sep, names, _ = tblio.read_header(f, sep, header)
    return sep, names


def run(args) -> None:
    sep = tblio.decode_delim(args.delim)
    sfx = args.suffixes.split(",", 1) if "," in args.suffixes else ("_x", "_y")
    suffixes = (sfx[0].strip(), sfx[1].strip())

    if args.print_cmd:
        left_sep, left_cols = _header_of(args.left, sep, args.header)
        _, right_cols = _header_of(args.right, sep or left_sep, args.header)
        keys = resolve_keys(args.keys, left_cols, right_cols)
        if len(keys) != 1:
            raise ValueError(f"--print-cmd supports exactly one key column, got {keys}.")
        sys.stdout.write(join_command(args.left, args.right, left_sep, left_cols.index(keys[0]) + 1,
                                      right_cols.index(keys[0]) + 1, args.how) + "\n")
        return

    left_df, left_sep, _ = tblio.read_frame(args.left, sep, args.header)
    right_df, _, _ = tblio.read_frame(args.right, sep, args.header)
    keys = resolve_keys(args.keys, list(left_df.columns), list(right_df.columns))
    merged = join_frames(left_df, right_df, keys, args.how, suffixes, args.sort)
    out_sep = tblio.decode_delim(args.output_delim) or left_sep
    tblio.write_frame(merged, out_sep, True, na_rep=args.null)


def main(argv=None):
    """Main entry point for the script."""
    tblio.restore_sigpipe()
    parser = _setup_arg_parser()
    args = parser.parse_args(argv)
    try:
        run(args)
    except (ValueError, KeyError, OSError) as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
