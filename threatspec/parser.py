"""Line-oriented parser for ThreatSpec source code annotations."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from .models import (
    FactModel, Package, Function, Mitigation, Exposure,
    Does, SendReceive, Test, Callee,
)
from .patterns import (
    PACKAGE_PATTERN, FUNCTION_PATTERN, MITIGATION_PATTERN, EXPOSURE_PATTERN,
    DOES_PATTERN, SENDRECEIVE_PATTERN, TEST_PATTERN, CALLS_PATTERN,
    code_pattern_for, normalize_name, split_lines,
)

logger = logging.getLogger(__name__)


class State(Enum):
    IDLE = 'idle'
    ANNOTATING = 'annotating'


@dataclass
class ParseState:
    """Parser position within one file."""
    file: str
    line_number: int = 0
    state: State = State.IDLE
    package: Optional[Package] = None
    function: Optional[Function] = None


Handler = Callable[[ParseState, re.Match, str], None]


@dataclass
class Rule:
    """A line pattern and its handler. `annotating_only` rules are skipped while IDLE."""
    name: str
    pattern: re.Pattern
    handler: Handler
    annotating_only: bool = False


def function_key(function: Function) -> str:
    """Normalized identity of an annotated function."""
    name = function.qualified_name
    return normalize_name(name) or name.replace('.', ':')


class AnnotationParser:
    """
    Parses ThreatSpec comments into a FactModel.

    Several files may be parsed into the same model; functions are keyed by
    normalized identity so file order does not matter, except that the last
    header for a given identity wins.
    """

    def __init__(self, facts: Optional[FactModel] = None, rebind_after_block: bool = True):
        self.facts = facts if facts is not None else FactModel()
        self.rebind_after_block = rebind_after_block

    def _rules(self, file: str) -> list[Rule]:
        # Evaluated in order, first match wins.
        return [
            Rule('package', PACKAGE_PATTERN, self._parse_package),
            Rule('function', FUNCTION_PATTERN, self._parse_function),
            Rule('mitigation', MITIGATION_PATTERN, self._parse_mitigation, annotating_only=True),
            Rule('exposure', EXPOSURE_PATTERN, self._parse_exposure, annotating_only=True),
            Rule('does', DOES_PATTERN, self._parse_does, annotating_only=True),
            Rule('sendreceive', SENDRECEIVE_PATTERN, self._parse_sendreceive, annotating_only=True),
            Rule('test', TEST_PATTERN, self._parse_test, annotating_only=True),
            Rule('code', code_pattern_for(file), self._parse_code),
            Rule('calls', CALLS_PATTERN, self._parse_calls),
        ]

    def parse(self, file: str, code: str) -> FactModel:
        """Parse the full text of one file into the fact model."""
        logger.debug("parsing file %s", file)
        rules = self._rules(file)
        state = ParseState(file=str(file))

        for line_number, line in enumerate(split_lines(code), start=1):
            state.line_number = line_number
            self._parse_line(state, rules, line)
            if state.function is not None:
                self.facts.upsert(function_key(state.function), state.function)

        return self.facts

    def parse_file(self, path: str | Path) -> FactModel:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            return self.parse(str(path), f.read())

    def _parse_line(self, state: ParseState, rules: list[Rule], line: str) -> None:
        for rule in rules:
            if rule.annotating_only and state.state is not State.ANNOTATING:
                continue
            match = rule.pattern.match(line)
            if match:
                rule.handler(state, match, line)
                return
        self._end_block(state)

    def _end_block(self, state: ParseState) -> None:
        state.state = State.IDLE
        if not self.rebind_after_block:
            state.function = None

    def _attach(self, state: ParseState, line: str) -> Optional[Function]:
        """The function a fact belongs to, counted as covered. None for orphans."""
        if state.function is None:
            logger.debug("orphaned: %s", line)
            return None
        self.facts.functions_covered[state.function] += 1
        return state.function

    def _parse_package(self, state: ParseState, match: re.Match, line: str) -> None:
        state.package = Package(match.group('package'), match.group('alias'), line)
        self.facts.packages.append(state.package)

    def _parse_function(self, state: ParseState, match: re.Match, line: str) -> None:
        state.function = Function(
            model=match.group('model'), function=match.group('function'),
            package=state.package, raw=line,
        )
        state.state = State.ANNOTATING

    def _parse_mitigation(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            function.mitigations.append(Mitigation.from_match(
                match.group('component'), match.group('threat'),
                match.group('mitigation'), match.group('ref'), line,
            ))

    def _parse_exposure(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            function.exposures.append(Exposure.from_match(
                match.group('component'), match.group('threat'),
                match.group('exposure'), match.group('ref'), line,
            ))

    def _parse_does(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            function.does.append(Does.from_match(
                match.group('action'), match.group('component'), match.group('ref'), line,
            ))

    def _parse_sendreceive(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            function.sendreceives.append(SendReceive.from_match(
                match.group('direction'), match.group('subject'),
                match.group('from_component'), match.group('to_component'), line,
            ))

    def _parse_test(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            self.facts.functions_tested[match.group('function')] += 1
            function.tests.append(Test(match.group('function'), match.group('threat'), match.group('ref'), line))

    def _parse_calls(self, state: ParseState, match: re.Match, line: str) -> None:
        function = self._attach(state, line)
        if function:
            for callee in match.group('functions').split():
                function.callees.append(Callee(callee.replace('.', ':'), line))

    def _parse_code(self, state: ParseState, match: re.Match, line: str) -> None:
        name = match.group('function')
        self.facts.functions_found[name] += 1
        parts = name.split()
        # Binding does not depend on the parser state: a later definition with
        # the same trailing name rebinds the current function.
        if state.function and parts and parts[-1] == state.function.short_name:
            state.function.bind(state.file, state.line_number, match.group('code'))


def parse_files(paths: Iterable[str | Path], rebind_after_block: bool = True) -> FactModel:
    """Parse several source files into one fact model."""
    parser = AnnotationParser(rebind_after_block=rebind_after_block)
    for path in paths:
        parser.parse_file(path)
    return parser.facts
