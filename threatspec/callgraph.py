"""Call graph ingestion from `caller --marker-line:col--> callee` edge lists."""

import logging
from dataclasses import dataclass
from typing import IO, Iterable, Optional

from .patterns import GRAPH_PATTERN, normalize_name, split_lines

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallSite:
    line: int
    column: int


# caller key -> callee key -> call sites
CallGraph = dict[str, dict[str, list[CallSite]]]


def parse_call_graph(lines: Iterable[str]) -> CallGraph:
    """
    Build an adjacency map from edge list lines.

    Lines that are not edges, or whose caller or callee cannot be decomposed
    into a function name, are skipped. Repeated call sites between the same
    pair are all kept.
    """
    call_graph: CallGraph = {}
    for line in lines:
        match = GRAPH_PATTERN.match(line.rstrip('\r\n'))
        if not match:
            continue

        caller = normalize_name(match.group('caller'))
        callee = normalize_name(match.group('callee'))
        if caller is None or callee is None:
            logger.debug("skipping call graph edge: %s", line.rstrip())
            continue

        site = CallSite(int(match.group('line')), int(match.group('column')))
        call_graph.setdefault(caller, {}).setdefault(callee, []).append(site)
    return call_graph


def read_call_graph(stream: Optional[IO[str]]) -> CallGraph:
    """
    Read a call graph from a text stream such as stdin.

    An absent stream, an interactive terminal or empty input all give an
    empty graph. The terminal check happens before reading so it never blocks.
    """
    if stream is None or stream.isatty():
        return {}

    contents = stream.read()
    if not contents:
        return {}

    call_graph = parse_call_graph(split_lines(contents))
    logger.debug("read call graph with %d callers", len(call_graph))
    return call_graph
