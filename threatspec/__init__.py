"""
ThreatSpec - threat modeling from source code annotations.

Parses ThreatSpec comments out of source files, correlates them with an
externally produced call graph, and emits a coverage report and a
component-level threat diagram.
"""

__version__ = "1.0.0"
