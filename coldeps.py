"""
Column dependency analysis for delimited tables.

Rows stream once through DependencyScanner, which only ever learns facts of
the form "column i does not determine column j". In undirected mode those
facts are symmetric and mean "i and j are not duplicates"; in directed mode
they falsify candidate functional dependencies i -> j.

After the scan, analyze()/evaluate() collapse indistinguishable columns into
equivalence classes (one representative each, the keep list) and, in
directed mode, order the remaining dependencies topologically and reduce them
to the direct edges worth printing.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

import numpy as np

from tblio import is_number, progress

# Default tolerances for numeric comparison.
EPS_ABS = 1.0
EPS_REL = 1e-8


# --------------------------
# Value comparison
# --------------------------
def compare(v1: str, v2: str, eps_abs: float = EPS_ABS, eps_rel: float = EPS_REL) -> bool:
    """
    True when two field values differ.

    Identical strings are equal. Two numbers are equal when their difference is
    below `eps_abs` and, relative to the smaller magnitude, below `eps_rel`;
    when the smaller magnitude is zero only the absolute test applies. Anything
    that is not a number is compared as a plain string.
    """
    if v1 == v2:
        return False
    if not (is_number(v1) and is_number(v2)):
        return True
    a, b = float(v1), float(v2)
    diff = abs(a - b)
    if not diff < eps_abs:
        return True
    smaller = min(abs(a), abs(b))
    if smaller == 0:
        return False
    return not diff / smaller < eps_rel


@dataclass(frozen=True)
class DepConfig:
    eps_abs: float = EPS_ABS
    eps_rel: float = EPS_REL
    directed: bool = False
    numeric: bool = True

    def __post_init__(self):
        if self.eps_abs < 0 or self.eps_rel < 0:
            raise ValueError("Tolerances must be non-negative.")

    def compare(self, v1: str, v2: str) -> bool:
        if not self.numeric:
            return v1 != v2
        return compare(v1, v2, self.eps_abs, self.eps_rel)

    def key(self, value: str):
        """Normalized lookup key: numbers collide by value, text by exact string."""
        if self.numeric and is_number(value):
            return float(value)
        return value


# --------------------------
# Discovery
# --------------------------
class BadRow(NamedTuple):
    line: Optional[int]
    expected: int
    actual: int
    fields: List[str]


def _report_bad_row(bad: BadRow):
    progress(f"Warning: line {bad.line}: expected {bad.expected} fields, got {bad.actual}: {bad.fields}")


@dataclass
class NonDependency:
    """
    What a scan proved. `ndep[i, j]` is True when some row showed that column i
    does not determine column j (symmetric in undirected mode).
    """
    ndep: np.ndarray
    directed: bool
    unique: frozenset = frozenset()
    rows_scanned: int = 0
    bad_rows: List[BadRow] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def num_columns(self) -> int:
        return self.ndep.shape[0]

    def determines(self, i: int, j: int) -> bool:
        return not self.ndep[i, j]

    def indistinguishable(self, i: int, j: int) -> bool:
        return not (self.ndep[i, j] or self.ndep[j, i])


class DependencyScanner:
    """
    Single-pass learner of the non-dependency relation.

    Feed rows one at a time with feed(), or hand an iterable to scan(). Facts
    are only ever added. A column that is independent of every other column in
    both directions joins `unique` and is skipped from then on; once all
    columns are unique no further rows are consumed.
    """

    def __init__(self, num_columns: int, config: Optional[DepConfig] = None,
                 on_bad_row: Optional[Callable[[BadRow], None]] = None):
        if num_columns < 0:
            raise ValueError("Number of columns must be non-negative.")
        self.n = num_columns
        self.config = config or DepConfig()
        self.on_bad_row = on_bad_row or _report_bad_row
        self.ndep = np.zeros((num_columns, num_columns), dtype=bool)
        self.unique: Set[int] = set(range(num_columns)) if num_columns == 1 else set()
        self.rows_scanned = 0
        self.bad_rows: List[BadRow] = []
        self.stopped_early = False
        # number of other columns each column is independent of in both directions
        self._resolved = [0] * num_columns
        # (source column, target column, normalized source value) -> last target value
        self._assoc: Dict[tuple, str] = {}

    @property
    def done(self) -> bool:
        return len(self.unique) == self.n

    def feed(self, fields: Sequence[str], line: Optional[int] = None) -> bool:
        """Process one row. Returns False once nothing more can be learned."""
        if len(fields) != self.n:
            bad = BadRow(line, self.n, len(fields), list(fields))
            self.bad_rows.append(bad)
            self.on_bad_row(bad)
            return not self.done
        self.rows_scanned += 1
        if self.config.directed:
            self._feed_directed(fields)
        else:
            self._feed_undirected(fields)
        return not self.done

    def scan(self, rows: Iterable[Sequence[str]], start_line: int = 1) -> NonDependency:
        return self.scan_numbered(enumerate(rows, start=start_line))

    def scan_numbered(self, numbered_rows: Iterable[Tuple[int, Sequence[str]]]) -> NonDependency:
        """Like `scan`, for (line_number, fields) pairs whose numbering has gaps."""
        if not self.done:
            for line, fields in numbered_rows:
                if not self.feed(fields, line):
                    self.stopped_early = True
                    break
        else:
            self.stopped_early = True
        return self.result()

    def result(self) -> NonDependency:
        return NonDependency(
            ndep=self.ndep.copy(), directed=self.config.directed,
            unique=frozenset(self.unique), rows_scanned=self.rows_scanned,
            bad_rows=list(self.bad_rows), stopped_early=self.stopped_early,
        )

    def _falsify(self, i: int, j: int):
        self.ndep[i, j] = True
        if not self.config.directed:
            self.ndep[j, i] = True
        elif not self.ndep[j, i]:
            return
        for c in (i, j):
            self._resolved[c] += 1
            if self._resolved[c] == self.n - 1:
                self.unique.add(c)

    def _feed_undirected(self, fields: Sequence[str]):
        differ = self.config.compare
        unique = self.unique
        for i in range(self.n - 1):
            if i in unique:
                continue
            vi = fields[i]
            row = self.ndep[i]
            for j in range(i + 1, self.n):
                if row[j] or j in unique:
                    continue
                if differ(vi, fields[j]):
                    self._falsify(i, j)
                    if i in unique:
                        break

    def _feed_directed(self, fields: Sequence[str]):
        differ = self.config.compare
        assoc = self._assoc
        for i in range(self.n):
            if i in self.unique:
                continue
            key = self.config.key(fields[i])
            row = self.ndep[i]
            for j in range(self.n):
                if j == i or row[j]:
                    continue
                slot = (i, j, key)
                seen = assoc.get(slot)
                if seen is not None and differ(seen, fields[j]):
                    self._falsify(i, j)
                else:
                    assoc[slot] = fields[j]


def discover(rows: Iterable[Sequence[str]], num_columns: int, config: Optional[DepConfig] = None,
             on_bad_row: Optional[Callable[[BadRow], None]] = None, start_line: int = 1) -> NonDependency:
    """Scan `rows` once and return the proven non-dependency relation."""
    return DependencyScanner(num_columns, config, on_bad_row).scan(rows, start_line=start_line)


# --------------------------
# Topological sort
# --------------------------
class CycleError(ValueError):
    def __init__(self, nodes):
        self.nodes = sorted(nodes)
        super().__init__(f"Cycle detected among nodes {self.nodes}")


def topo_sort(adjacency: Sequence[Sequence[int]]) -> List[int]:
    """
    Kahn's algorithm over out-edge lists indexed by node.

    The queue is FIFO, seeded with the zero in-degree nodes in ascending order;
    nodes released by the same node are enqueued in ascending order. Raises
    CycleError rather than returning a partial order.
    """
    n = len(adjacency)
    indegree = [0] * n
    for succ in adjacency:
        for v in succ:
            indegree[v] += 1
    queue = deque(u for u in range(n) if indegree[u] == 0)
    order = []
    while queue:
        u = queue.popleft()
        order.append(u)
        ready = []
        for v in adjacency[u]:
            indegree[v] -= 1
            if indegree[v] == 0:
                ready.append(v)
        queue.extend(sorted(ready))
    if len(order) < n:
        raise CycleError(u for u in range(n) if indegree[u] > 0)
    return order


def transitive_reduction(adjacency: Sequence[Sequence[int]], order: Sequence[int]) -> List[Tuple[int, int]]:
    """
    Direct edges of a DAG, walked in topological order.

    Successors are visited nearest first (topological rank, then index); one
    already reachable through an emitted successor is dropped.
    """
    rank = {u: r for r, u in enumerate(order)}
    reach: List[Set[int]] = [set() for _ in adjacency]
    for u in reversed(order):
        for v in adjacency[u]:
            reach[u].add(v)
            reach[u] |= reach[v]

    edges = []
    for u in order:
        covered: Set[int] = set()
        for v in sorted(adjacency[u], key=lambda v: (rank[v], v)):
            if v in covered:
                continue
            edges.append((u, v))
            covered |= reach[v]
    return edges


# --------------------------
# Evaluation
# --------------------------
class DependencyCycleError(RuntimeError):
    """
    The dependency graph between class representatives is not acyclic.

    `report` holds what was computed before the graph step: the classes and
    the keep list, with no order or edges.
    """

    def __init__(self, message: str, report: Optional["DependencyReport"] = None):
        super().__init__(message)
        self.report = report


class EquivalenceClass(NamedTuple):
    representative: int
    members: Tuple[int, ...]
    label: str


def _class_label(members: Sequence[int], column_names: Sequence[str]) -> str:
    if len(members) == 1:
        return str(column_names[members[0]])
    return "{" + ",".join(str(column_names[m]) for m in members) + "}"


def equivalence_classes(relation: NonDependency, column_names: Sequence[str]) -> List[EquivalenceClass]:
    """Partition columns; each class is led by its lowest-indexed member."""
    n = relation.num_columns
    assigned = [False] * n
    classes = []
    for rep in range(n):
        if assigned[rep]:
            continue
        assigned[rep] = True
        members = [rep]
        for c in range(rep + 1, n):
            if not assigned[c] and relation.indistinguishable(rep, c):
                assigned[c] = True
                members.append(c)
        classes.append(EquivalenceClass(rep, tuple(members), _class_label(members, column_names)))
    return classes


def dependency_graph(relation: NonDependency, representatives: Sequence[int]) -> List[List[int]]:
    """Out-edge lists over positions in `representatives`: u -> v when u determines v."""
    return [
        [pv for pv, v in enumerate(representatives) if v != u and relation.determines(u, v)]
        for u in representatives
    ]


@dataclass
class DependencyReport:
    column_names: List[str]
    classes: List[EquivalenceClass]
    directed: bool = False
    # representatives in topological order (directed mode only)
    order: List[int] = field(default_factory=list)
    # reduced edges between representatives, as column indices
    edges: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def keep(self) -> List[int]:
        return [c.representative for c in self.classes]

    @property
    def duplicates(self) -> List[EquivalenceClass]:
        return [c for c in self.classes if len(c.members) > 1]

    def label(self, column: int) -> str:
        for c in self.classes:
            if c.representative == column:
                return c.label
        return str(self.column_names[column])

    def lines(self) -> List[str]:
        out = [c.label for c in self.duplicates]
        if self.directed:
            out.extend(f"{self.label(u)} -> {self.label(v)}" for u, v in self.edges)
        return out

    def format(self) -> str:
        return "\n".join(self.lines())


def analyze(relation: NonDependency, column_names: Sequence[str],
            directed: Optional[bool] = None) -> DependencyReport:
    if len(column_names) != relation.num_columns:
        raise ValueError(f"Got {len(column_names)} column names for {relation.num_columns} columns.")
    if directed is None:
        directed = relation.directed
    report = DependencyReport(list(column_names), equivalence_classes(relation, column_names), directed)
    if not directed:
        return report

    reps = report.keep
    adjacency = dependency_graph(relation, reps)
    try:
        order = topo_sort(adjacency)
    except CycleError as e:
        names = [column_names[reps[p]] for p in e.nodes]
        raise DependencyCycleError(f"Dependency cycle between classes {names}; "
                                   "isomorphic columns were not collapsed.", report) from e
    report.order = [reps[p] for p in order]
    report.edges = [(reps[u], reps[v]) for u, v in transitive_reduction(adjacency, order)]
    return report


def evaluate(relation: NonDependency, column_names: Sequence[str],
             directed: Optional[bool] = None) -> Tuple[List[int], str]:
    """Returns (keep list of 0-based column indices, report text)."""
    report = analyze(relation, column_names, directed)
    return report.keep, report.format()
