#!/usr/bin/env python3
"""
tbldedup: find duplicate, isomorphic and derivable columns of a delimited table.

The table is read once. Columns that are duplicates of each other (or, with
-i, in one-to-one correspondence) are grouped and the lowest-numbered column
of each group is kept. The default output is a `cut` command selecting the
kept columns from the original file; -x runs it instead, -c only reports.
"""
import sys
import itertools
import shlex
import subprocess
from typing import List, Optional

import coldeps
import tblio
from tblio import CustomArgumentParser, progress

__version__ = tblio.__version__


def _setup_arg_parser():
    parser = CustomArgumentParser(
        prog="tbldedup",
        description="Find duplicate columns and print a cut command that removes them.",
        epilog="Example: tbldedup -i -v data.tsv.gz",
    )
    parser.add_argument("file", nargs="?", default="-", help="Input file, gzip allowed ('-' for stdin).")
    tblio.add_input_args(parser)

    cmp_opts = parser.add_argument_group("Comparison")
    cmp_opts.add_argument("-a", "--eps-abs", type=float, default=coldeps.EPS_ABS,
                          help="Numbers closer than this (and within --eps-rel) are equal.")
    cmp_opts.add_argument("-r", "--eps-rel", type=float, default=coldeps.EPS_REL,
                          help="Relative tolerance for numeric equality.")
    cmp_opts.add_argument("-e", "--exact", action="store_true", help="Compare values as exact strings.")
    cmp_opts.add_argument("-i", "--isomorphism", action="store_true",
                          help="Collapse isomorphic columns and report functional dependencies.")

    out_opts = parser.add_argument_group("Output")
    mode = out_opts.add_mutually_exclusive_group()
    mode.add_argument("-c", "--check", action="store_true", help="Only report the column classes on stderr.")
    mode.add_argument("-x", "--execute", action="store_true", help="Run the generated command.")
    out_opts.add_argument("-v", "--verbose", action="store_true", help="Report the column classes on stderr too.")
    return parser


def cut_command(path: Optional[str], sep: str, keep: List[int]) -> str:
    """Shell command selecting the 0-based `keep` columns from `path`."""
    if len(sep) != 1:
        raise ValueError(f"cut needs a single-character delimiter, got {sep!r}.")
    cut = ["cut"]
    if sep != "\t":
        cut += ["-d", sep]
    cut += ["-f", ",".join(str(k + 1) for k in keep)]
    if not path or path == "-":
        return shlex.join(cut)
    if tblio.is_gzip_path(path):
        return f"gzip -dc {shlex.quote(path)} | {shlex.join(cut)}"
    return shlex.join(cut + [path])


def scan_file(path: Optional[str], config: coldeps.DepConfig, sep: Optional[str] = None,
              header: Optional[bool] = None):
    """Returns (sep, column_names, relation) for one pass over `path`. Blank lines are skipped."""
    with tblio.open_text(path) as f:
        sep, names, first_row = tblio.read_header(f, sep, header)
        rows = tblio.iter_rows(f, sep, skip_blank=True)
        if first_row is not None:
            rows = itertools.chain([(1, first_row)], rows)
        relation = coldeps.DependencyScanner(len(names), config).scan_numbered(rows)
    return sep, names, relation


def _print_report(report: coldeps.DependencyReport, relation: coldeps.NonDependency, quiet: bool):
    for line in report.lines():
        progress(line)
    if quiet:
        return
    n = len(report.column_names)
    kept = len(report.keep)
    if kept == n:
        progress(f"Info: no duplicate columns among {n}.")
    else:
        progress(f"Info: keeping {kept} of {n} columns.")
    if relation.stopped_early:
        progress(f"Info: every column was distinct after {relation.rows_scanned} rows; stopped reading.")
    if relation.bad_rows:
        progress(f"Info: skipped {len(relation.bad_rows)} malformed row(s).")


def run(args) -> int:
    """Returns the exit status: 0, or 3 when the dependency graph had a cycle."""
    if args.execute and args.file == "-":
        raise ValueError("--execute needs a file argument; stdin is consumed by the scan.")
    config = coldeps.DepConfig(eps_abs=args.eps_abs, eps_rel=args.eps_rel,
                               directed=args.isomorphism, numeric=not args.exact)
    sep, names, relation = scan_file(args.file, config, tblio.decode_delim(args.delim), args.header)
    status = 0
    try:
        report = coldeps.analyze(relation, names)
    except coldeps.DependencyCycleError as e:
        # the classes and keep list are still sound; only the edges are lost
        sys.stderr.write(f"Internal error: {e}\n")
        report, status = e.report, 3

    if args.check or args.verbose:
        _print_report(report, relation, args.quiet)
    if args.check:
        return status

    command = cut_command(args.file, sep, report.keep)
    if not args.execute:
        sys.stdout.write(command + "\n")
        return status
    sys.stdout.flush()
    subprocess.run(command, shell=True, check=True)
    return status


def main(argv=None):
    """Main entry point for the script."""
    tblio.restore_sigpipe()
    parser = _setup_arg_parser()
    args = parser.parse_args(argv)
    try:
        status = run(args)
    except subprocess.CalledProcessError as e:
        sys.stderr.write(f"Error: command failed with exit status {e.returncode}: {e.cmd}\n")
        sys.exit(1)
    except (ValueError, OSError) as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)
    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
