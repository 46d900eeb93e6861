"""Text coverage report generator."""

from pathlib import Path
from typing import Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .correlator import analyze_components
from .models import Component, FactModel


class ReportGenerator:
    """Renders the coverage and per-component threat report."""

    def __init__(self, template_dir: Optional[Path] = None):
        if template_dir is None:
            template_dir = Path(__file__).parent / 'templates'
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def generate(self, facts: FactModel, components: Optional[dict[str, Component]] = None, title: Optional[str] = None) -> str:
        if components is None:
            components = analyze_components(facts)
        context = {
            'title': title or '...',
            'coverage': facts.coverage(),
            'components': list(components.values()),
        }
        template = self.env.get_template('report.md.j2')
        return template.render(**context)

    def generate_to_file(self, facts: FactModel, output_path: Path, title: Optional[str] = None) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.generate(facts, title=title))
        return output_path


def generate_report(facts: FactModel, title: Optional[str] = None) -> str:
    """Generate the text report for a fact model."""
    generator = ReportGenerator()
    return generator.generate(facts, title=title)
