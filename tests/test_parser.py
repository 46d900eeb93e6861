"""Tests for the annotation parser state machine."""

import logging

from threatspec.correlator import analyze_components
from threatspec.parser import AnnotationParser, function_key, parse_files

EXAMPLE = """\
// ThreatSpec package App
// ThreatSpec input-validation for App.Handle
// Mitigates api:gateway against injection with input sanitization (CWE-89)
// Calls App.Validate
func Handle(r Request) { ... }
"""

STORAGE = """\
# ThreatSpec package Storage as store
# ThreatSpec TMv1 for Storage.Save
# Exposes db:postgres to sql injection with raw queries (CWE-89)
# Creates records for db:postgres
# Sends user data from app:api to db:postgres
# Receives rows from db:postgres to app:api
# Tests Storage.Save for sql injection
def Save(self, record):
    pass
"""


def _parse(code: str, file: str = "app.go", **kwargs):
    parser = AnnotationParser(**kwargs)
    return parser.parse(file, code)


def _only_function(facts):
    assert len(facts.functions) == 1
    return list(facts.functions.values())[0]


def test_example_file():
    """Package, function, mitigation, callee and binding from one annotated function."""
    facts = _parse(EXAMPLE)

    assert [p.package for p in facts.packages] == ["App"]
    function = _only_function(facts)
    assert function.function == "App.Handle"
    assert function.model == "input-validation"
    assert function.package.package == "App"
    assert function.file == "app.go"
    assert function.line_number == 5
    assert function.code == "Handle(r Request)"

    assert len(function.mitigations) == 1
    mitigation = function.mitigations[0]
    assert mitigation.component == "gateway"
    assert mitigation.zone == "api"
    assert mitigation.threat == "injection"
    assert mitigation.mitigation == "input sanitization"
    assert mitigation.ref == "CWE-89"

    assert [c.callee for c in function.callees] == ["App:Validate"]

    gateway = analyze_components(facts)["api-gateway"]
    assert len(gateway.threats["injection"].mitigations) == 1

    coverage = facts.coverage()
    assert coverage.found == 1
    assert coverage.covered == 1
    assert coverage.tested == 0


def test_function_key_uses_package_name():
    facts = _parse(EXAMPLE)
    assert list(facts.functions) == ["App:App:Handle"]


def test_function_key_without_package():
    facts = _parse("// ThreatSpec model for Handle\n")
    function = _only_function(facts)
    assert function.package is None
    assert function_key(function) == "Handle"


def test_all_fact_kinds():
    """Exposures, actions, flows and tests attach to the current function."""
    facts = _parse(STORAGE, file="store.py")
    function = _only_function(facts)

    assert list(facts.functions) == ["Storage:Storage:Save"]
    assert function.package.alias == "store"
    assert function.line_number == 8
    assert function.code == "Save(self, record)"

    exposure = function.exposures[0]
    assert (exposure.zone, exposure.component) == ("db", "postgres")
    assert exposure.threat == "sql injection"
    assert exposure.exposure == "raw queries"
    assert exposure.ref == "CWE-89"

    does = function.does[0]
    assert does.action == "records"
    assert (does.zone, does.component) == ("db", "postgres")
    assert does.ref is None

    sends, receives = function.sendreceives
    assert sends.direction == "sends"
    assert sends.subject == "user data"
    assert (sends.from_zone, sends.from_component) == ("app", "api")
    assert (sends.to_zone, sends.to_component) == ("db", "postgres")
    assert receives.direction == "receives"
    assert receives.subject == "rows"

    test = function.tests[0]
    assert test.function == "Storage.Save"
    assert test.threat == "sql injection"

    coverage = facts.coverage()
    assert (coverage.found, coverage.covered, coverage.tested) == (1, 1, 1)
    assert facts.functions_covered[function] == 5


def test_orphaned_annotation_is_discarded(caplog):
    """Facts before any function header are dropped."""
    caplog.set_level(logging.DEBUG, logger="threatspec.parser")
    code = (
        "// Calls App.Validate\n"
        "// Mitigates api:gateway against injection with sanitization\n"
        "// ThreatSpec model for App.Handle\n"
    )
    facts = _parse(code)

    function = _only_function(facts)
    assert function.mitigations == []
    assert function.callees == []
    assert len(facts.functions_covered) == 0
    assert "orphaned: // Calls App.Validate" in caplog.text


def test_fact_after_block_end_is_ignored():
    """A non-annotation line closes the block; later facts are not attached."""
    code = (
        "// ThreatSpec model for App.Handle\n"
        "x := 1\n"
        "// Mitigates api:gateway against injection with sanitization\n"
    )
    facts = _parse(code)
    assert _only_function(facts).mitigations == []


def test_calls_outside_block_still_attach():
    """Calls lines are honoured in any state while a function is current."""
    code = (
        "// ThreatSpec model for App.Handle\n"
        "\n"
        "// Calls App.Validate App.Store\n"
    )
    facts = _parse(code)
    assert [c.callee for c in _only_function(facts).callees] == ["App:Validate", "App:Store"]


def test_repeated_header_last_writer_wins():
    """Each header creates a new function; the later one replaces the earlier in the table."""
    code = (
        "// ThreatSpec first for App.Handle\n"
        "// Mitigates a against t with m\n"
        "// ThreatSpec second for App.Handle\n"
    )
    facts = _parse(code)

    function = _only_function(facts)
    assert function.model == "second"
    assert function.mitigations == []
    assert [f.model for f in facts.duplicates] == ["first"]


def test_stale_function_rebinds_by_default():
    """A later definition with the same trailing name rebinds after the block ended."""
    code = (
        "// ThreatSpec model for App.Handle\n"
        "// Mitigates a against t with m\n"
        "func Handle() {\n"
        "}\n"
        "\n"
        "func (s *Server) Handle() {\n"
        "}\n"
    )
    facts = _parse(code)
    function = _only_function(facts)
    assert function.line_number == 6
    assert function.code == "(s *Server) Handle()"
    assert facts.functions_found["Handle"] == 1
    assert facts.functions_found["(s *Server) Handle"] == 1


def test_stale_rebinding_can_be_disabled():
    code = (
        "// ThreatSpec model for App.Handle\n"
        "// Mitigates a against t with m\n"
        "func Handle() {\n"
        "}\n"
        "func Handle() {\n"
    )
    facts = _parse(code, rebind_after_block=False)
    function = _only_function(facts)
    assert function.line_number == 3
    assert facts.functions_found["Handle"] == 2


def test_definitions_counted_without_annotations():
    code = "func A() {\n}\nfunc B() {\n}\n"
    facts = _parse(code)
    assert facts.functions == {}
    assert facts.coverage().found == 2
    assert facts.coverage().covered_percent == 0.0


def test_line_endings_are_normalized():
    facts = _parse(EXAMPLE.replace("\n", "\r\n"))
    function = _only_function(facts)
    assert function.line_number == 5
    assert function.mitigations[0].ref == "CWE-89"


def test_form_feed_does_not_shift_line_numbers():
    """Only line endings separate lines; a form feed line counts once."""
    code = "// ThreatSpec m for App.Handle\n\x0c\n// x\nfunc Handle() {\n"
    facts = _parse(code)
    assert _only_function(facts).line_number == 4


def test_unicode_separator_stays_inside_annotation():
    code = (
        "// ThreatSpec m for App.Handle\n"
        "// Mitigates a against t with m\u2028x\n"
        "func Handle() {\n"
    )
    function = _only_function(_parse(code))
    assert function.line_number == 3
    assert function.mitigations[0].mitigation == "m\u2028x"


def test_functions_keyed_across_files(tmp_path):
    """Several files contribute to one fact model."""
    (tmp_path / "a.go").write_text(EXAMPLE)
    (tmp_path / "b.py").write_text(STORAGE)

    facts = parse_files([tmp_path / "a.go", tmp_path / "b.py"])

    assert set(facts.functions) == {"App:App:Handle", "Storage:Storage:Save"}
    assert facts.functions["App:App:Handle"].file == str(tmp_path / "a.go")
    assert facts.coverage().found == 2
