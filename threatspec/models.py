"""In-memory fact model built from ThreatSpec annotations."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Union

from .patterns import parse_component


@dataclass
class Package:
    """A `ThreatSpec package` declaration."""
    package: str
    alias: Optional[str] = None
    raw: str = ''


@dataclass
class Mitigation:
    component: str
    zone: str
    threat: str
    mitigation: str
    ref: Optional[str] = None
    raw: str = ''

    @classmethod
    def from_match(cls, component: str, threat: str, mitigation: str, ref: Optional[str], raw: str) -> 'Mitigation':
        name, zone = parse_component(component)
        return cls(component=name, zone=zone, threat=threat, mitigation=mitigation, ref=ref, raw=raw)


@dataclass
class Exposure:
    component: str
    zone: str
    threat: str
    exposure: str
    ref: Optional[str] = None
    raw: str = ''

    @classmethod
    def from_match(cls, component: str, threat: str, exposure: str, ref: Optional[str], raw: str) -> 'Exposure':
        name, zone = parse_component(component)
        return cls(component=name, zone=zone, threat=threat, exposure=exposure, ref=ref, raw=raw)


@dataclass
class Does:
    """A side-effecting capability of a function, not tied to a threat."""
    action: str
    component: str
    zone: str
    ref: Optional[str] = None
    raw: str = ''

    @classmethod
    def from_match(cls, action: str, component: str, ref: Optional[str], raw: str) -> 'Does':
        name, zone = parse_component(component)
        return cls(action=action, component=name, zone=zone, ref=ref, raw=raw)


@dataclass
class SendReceive:
    """Data flowing between two components."""
    direction: str
    subject: str
    from_component: str
    from_zone: str
    to_component: str
    to_zone: str
    raw: str = ''

    @classmethod
    def from_match(cls, direction: str, subject: str, from_component: str, to_component: str, raw: str) -> 'SendReceive':
        from_name, from_zone = parse_component(from_component)
        to_name, to_zone = parse_component(to_component)
        return cls(
            direction=direction.lower(), subject=subject,
            from_component=from_name, from_zone=from_zone,
            to_component=to_name, to_zone=to_zone, raw=raw,
        )


@dataclass
class Test:
    function: str
    threat: str
    ref: Optional[str] = None
    raw: str = ''

    __test__ = False


@dataclass
class Callee:
    callee: str
    raw: str = ''


@dataclass(eq=False)
class Function:
    """
    A function introduced by a `ThreatSpec <model> for <function>` header.

    Compared and hashed by identity: two headers naming the same function are
    still two distinct records.
    """
    model: str
    function: str
    package: Optional[Package] = None
    raw: str = ''
    mitigations: list[Mitigation] = field(default_factory=list)
    exposures: list[Exposure] = field(default_factory=list)
    does: list[Does] = field(default_factory=list)
    sendreceives: list[SendReceive] = field(default_factory=list)
    tests: list[Test] = field(default_factory=list)
    callees: list[Callee] = field(default_factory=list)
    file: Optional[str] = None
    line_number: Optional[int] = None
    code: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        """`package.function` as used for normalization; the bare name without a package."""
        if self.package:
            return f'{self.package.package}.{self.function}'
        return self.function

    @property
    def short_name(self) -> str:
        return self.function.split('.')[-1]

    def bind(self, file: str, line_number: int, code: str) -> None:
        self.file = file
        self.line_number = line_number
        self.code = code


def percentage(numerator: int, denominator: int) -> float:
    """Percentage rounded to 2 places, 0.0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return round(100 * numerator / denominator, 2)


@dataclass
class CoverageSummary:
    found: int
    covered: int
    tested: int

    @property
    def covered_percent(self) -> float:
        return percentage(self.covered, self.found)

    @property
    def tested_percent(self) -> float:
        return percentage(self.tested, self.covered)


@dataclass
class FactModel:
    """
    Everything extracted from a set of source files.

    `functions` is keyed by normalized identity and is last-writer-wins;
    records displaced by a later upsert are kept in `duplicates`.
    The tallies count facts, not functions: use `coverage()` for the
    per-function counts.
    """
    functions: dict[str, Function] = field(default_factory=dict)
    packages: list[Package] = field(default_factory=list)
    duplicates: list[Function] = field(default_factory=list)
    functions_found: Counter = field(default_factory=Counter)
    functions_covered: Counter = field(default_factory=Counter)
    functions_tested: Counter = field(default_factory=Counter)

    def upsert(self, key: str, function: Function) -> None:
        existing = self.functions.get(key)
        if existing is not None and existing is not function:
            self.duplicates.append(existing)
        self.functions[key] = function

    def coverage(self) -> CoverageSummary:
        return CoverageSummary(
            found=len(self.functions_found),
            covered=len(self.functions_covered),
            tested=len(self.functions_tested),
        )


@dataclass
class Provenance:
    """Where a mitigation or exposure was declared."""
    fact: Union[Mitigation, Exposure]
    function: str
    file: Optional[str]
    line: Optional[int]


@dataclass
class ThreatRecord:
    mitigations: list[Provenance] = field(default_factory=list)
    exposures: list[Provenance] = field(default_factory=list)


@dataclass
class Component:
    """A (zone, component) pair aggregated across every function."""
    key: str
    zone: str
    component: str
    threats: dict[str, ThreatRecord] = field(default_factory=dict)
    actions: list[str] = field(default_factory=list)

    def threat(self, name: str) -> ThreatRecord:
        if name not in self.threats:
            self.threats[name] = ThreatRecord()
        return self.threats[name]
