"""Pydantic models for configuration file validation."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ParserSettings(BaseModel):
    """Annotation parser behaviour."""
    model_config = ConfigDict(extra='forbid')

    # Allow a code definition seen after the annotation block ended to bind
    # to the last annotated function.
    rebind_after_block: bool = True


class GraphSettings(BaseModel):
    """Component graph derivation."""
    model_config = ConfigDict(extra='forbid')

    clamp_other_count: bool = False


class DiagramSettings(BaseModel):
    """Graphviz output."""
    model_config = ConfigDict(extra='forbid')

    output: str = 'threatspec'
    format: str = Field('png', pattern=r'^(png|svg|pdf|dot)$')
    rankdir: str = Field('LR', pattern=r'^(LR|RL|TB|BT)$')
    nodesep: float = 0.6

    @field_validator('output')
    @classmethod
    def validate_output(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Diagram output path cannot be empty')
        return v.strip()


class ThreatSpecConfig(BaseModel):
    """Complete configuration combining all sections."""
    model_config = ConfigDict(extra='forbid')

    title: Optional[str] = None
    parser: ParserSettings = Field(default_factory=ParserSettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    diagram: DiagramSettings = Field(default_factory=DiagramSettings)
