#!/usr/bin/env python3
"""
tblview: pretty-print a delimited file as aligned columns for the terminal.

Numeric columns are right-aligned, text columns left-aligned. Cells wider
than --max-col-width are cut with '...' unless --no-truncate is given.
"""
import sys
from typing import List

import pandas as pd

import tblio
from tblio import CustomArgumentParser, progress

__version__ = tblio.__version__


def _setup_arg_parser():
    parser = CustomArgumentParser(prog="tblview", description="Render a delimited file with aligned columns.")
    parser.add_argument("file", nargs="?", default="-", help="Input file, gzip allowed ('-' for stdin).")
    tblio.add_input_args(parser)
    parser.add_argument("-n", "--max-rows", default="all",
                        help="Rows to show. Use 'all' to show all rows.")
    parser.add_argument("-w", "--max-col-width", type=int, default=40, help="Max width for any column.")
    parser.add_argument("--no-truncate", action="store_true", help="Disable truncation of wide columns.")
    parser.add_argument("--show-index", action="store_true", help="Show 1-based column indices above the header.")
    return parser


def _is_numeric_column(values: pd.Series) -> bool:
    filled = [v for v in values if v != ""]
    return bool(filled) and all(tblio.is_number(v) for v in filled)


def format_table(df: pd.DataFrame, is_header_present: bool = True, max_col_width: int = 40,
                 truncate: bool = True, show_index_header: bool = False) -> List[str]:
    """The table as display lines: optional index line, header, rule, rows."""
    if df.empty and not list(df.columns):
        return ["(empty table)"]

    df_str = df.fillna("").astype(str)
    col_widths = {}
    right = {}
    for col in df_str.columns:
        header_len = len(str(col)) if is_header_present else 0
        max_data_len = int(df_str[col].str.len().max()) if len(df_str) else 0
        width = max(header_len, max_data_len, 1)
        col_widths[col] = min(width, max_col_width) if truncate else width
        right[col] = _is_numeric_column(df_str[col])

    def cell(val, col):
        width = col_widths[col]
        if truncate and len(val) > width:
            val = val[:max(width - 3, 0)] + "..."
        return f"{val:>{width}}" if right[col] else f"{val:<{width}}"

    lines = []
    if show_index_header:
        lines.append(" | ".join(cell(str(i + 1), col) for i, col in enumerate(df_str.columns)))
    if is_header_present:
        lines.append(" | ".join(cell(str(col), col) for col in df_str.columns))
        lines.append("-+-".join("-" * col_widths[col] for col in df_str.columns))
    for row in df_str.itertuples(index=False, name=None):
        lines.append(" | ".join(cell(val, col) for val, col in zip(row, df_str.columns)))
    if df.empty:
        lines.append("(empty table)")
    return [line.rstrip() for line in lines]


def main(argv=None):
    """Main entry point for the script."""
    tblio.restore_sigpipe()
    parser = _setup_arg_parser()
    args = parser.parse_args(argv)
    try:
        df, _, is_header_present = tblio.read_frame(args.file, tblio.decode_delim(args.delim), args.header)

        max_rows_str = str(args.max_rows).lower()
        if max_rows_str != "all":
            try:
                max_rows = int(max_rows_str)
            except ValueError:
                raise ValueError(f"Invalid --max-rows value '{args.max_rows}'.")
            if len(df) > max_rows and not args.quiet:
                progress(f"Warning: Displaying first {max_rows} of {len(df)} total rows. Use --max-rows 'all' to show all.")
            df = df.head(max_rows)

        for line in format_table(df, is_header_present, args.max_col_width,
                                 truncate=not args.no_truncate, show_index_header=args.show_index):
            print(line)
    except BrokenPipeError:
        try: sys.stdout.close()
        except OSError: pass
    except (ValueError, OSError) as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
