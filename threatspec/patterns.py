"""Line patterns for ThreatSpec annotations and identifier normalization."""

import re
from typing import Optional, Tuple

COMMENT = r'^\s*(?://|#)\s*'

PACKAGE_PATTERN = re.compile(COMMENT + r'ThreatSpec package (?P<package>.+?)(?: as (?P<alias>.+?))?\s*$')
FUNCTION_PATTERN = re.compile(COMMENT + r'ThreatSpec (?P<model>.+?) for (?P<function>.+?)\s*$')
MITIGATION_PATTERN = re.compile(
    COMMENT + r'Mitigates (?P<component>.+?) against (?P<threat>.+?) with (?P<mitigation>.+?)\s*(?:\((?P<ref>.*?)\))?\s*$'
)
EXPOSURE_PATTERN = re.compile(
    COMMENT + r'Exposes (?P<component>.+?) to (?P<threat>.+?) with (?P<exposure>.+?)\s*(?:\((?P<ref>.*?)\))?\s*$'
)
DOES_PATTERN = re.compile(
    COMMENT + r'(?:It|Does|Creates|Returns) (?P<action>.+?) for (?P<component>.+?)\s*(?:\((?P<ref>.*?)\))?\s*$'
)
SENDRECEIVE_PATTERN = re.compile(
    COMMENT + r'(?P<direction>Sends|Receives) (?P<subject>.+?) from (?P<from_component>.+?) to (?P<to_component>.+?)\s*$'
)
TEST_PATTERN = re.compile(COMMENT + r'Tests (?P<function>.+?) for (?P<threat>.+?)\s*(?:\((?P<ref>.*?)\))?\s*$')
CALLS_PATTERN = re.compile(COMMENT + r'Calls (?P<functions>.+?)\s*$')

ZONE_PATTERN = re.compile(r'^(?P<zone>.+?):(?P<component>.+?)$')

# Code definition lines. `function` is the part whose last whitespace-separated
# token is compared against the annotated function name.
GO_FUNC_PATTERN = re.compile(r'^\s*func\s+(?P<code>(?P<function>.+?)\(.*?)\s*\{')
PYTHON_DEF_PATTERN = re.compile(r'^\s*(?:async\s+)?def\s+(?P<code>(?P<function>\w+)\s*\(.*?)\s*:?\s*$')
RUBY_DEF_PATTERN = re.compile(r'^\s*def\s+(?P<code>(?:self\.)?(?P<function>[\w?!=]+)(?:\(.*?\))?)\s*$')

CODE_PATTERNS = {
    '.go': GO_FUNC_PATTERN,
    '.py': PYTHON_DEF_PATTERN,
    '.rb': RUBY_DEF_PATTERN,
}

GRAPH_PATTERN = re.compile(
    r'^(?P<caller>.+?)\t--(?P<dynamic>.+?)-(?P<line>\d+):(?P<column>\d+)-->\t(?P<callee>.+?)$'
)
GRAPH_FUNC_PATTERN = re.compile(
    r'^\(?\*?(?:(?P<path>.+)/)?(?:(?P<package>.+?)\.)?(?P<struct>.+?)?\)?\.(?P<func>.+?)(?P<suffix>#\d+)?$'
)


def code_pattern_for(filename: str) -> re.Pattern:
    """Return the code definition pattern for a file, Go when the extension is unknown."""
    for extension, pattern in CODE_PATTERNS.items():
        if str(filename).lower().endswith(extension):
            return pattern
    return GO_FUNC_PATTERN


def parse_component(component: str) -> Tuple[str, str]:
    """Split `zone:component` into (component, zone). A bare name is its own zone."""
    match = ZONE_PATTERN.match(component)
    if match:
        return match.group('component'), match.group('zone')
    return component, component


def to_key(value: str) -> str:
    return re.sub(r'[^a-z0-9]', '', value.lower())


def component_key(zone: str, component: str) -> str:
    return f'{to_key(zone)}-{to_key(component)}'


def normalize_graph_func(path: Optional[str], package: Optional[str], struct: Optional[str], func: str) -> str:
    return ':'.join(part for part in (path, package, struct, func) if part)


def normalize_name(name: str) -> Optional[str]:
    """
    Normalize a dotted or call-graph style function name to its colon-joined key.

    Both `pkg.Function` and `(*path/pkg.Struct).Function#2` spellings are
    accepted. Returns None when the name cannot be decomposed.
    """
    match = GRAPH_FUNC_PATTERN.match(name)
    if not match:
        return None
    return normalize_graph_func(match.group('path'), match.group('package'), match.group('struct'), match.group('func'))


def split_lines(text: str) -> list[str]:
    """Split on line endings only (`\\r\\n`, `\\r`, `\\n`), unlike `str.splitlines`."""
    lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    if lines and lines[-1] == '':
        lines.pop()
    return lines
