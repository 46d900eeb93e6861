"""ThreatSpec - Command Line Interface."""

import logging
import sys
from typing import Optional
import click

from . import __version__
from .callgraph import read_call_graph
from .config import load_config, ConfigError
from .correlator import analyze_components, build_component_graph
from .diagram import DiagramGenerator
from .parser import parse_files
from .report_generator import ReportGenerator
from .schemas import ThreatSpecConfig


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')


def _load(config_path: Optional[str]) -> ThreatSpecConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(click.style(f'Invalid configuration: {e}', fg='red'), err=True)
        sys.exit(1)


def _parse(files: tuple[str, ...], config: ThreatSpecConfig):
    try:
        return parse_files(files, rebind_after_block=config.parser.rebind_after_block)
    except OSError as e:
        click.echo(click.style(f'Failed to read source: {e}', fg='red'), err=True)
        sys.exit(1)


def _print_report(facts, config: ThreatSpecConfig) -> None:
    components = analyze_components(facts)
    click.echo(ReportGenerator().generate(facts, components, title=config.title), nl=False)


def _write_diagram(facts, config: ThreatSpecConfig, output: Optional[str], output_format: Optional[str]) -> None:
    call_graph = read_call_graph(click.get_text_stream('stdin'))
    component_graph = build_component_graph(facts, call_graph, config.graph.clamp_other_count)
    generator = DiagramGenerator(component_graph, config.diagram)

    output_format = output_format or config.diagram.format
    if output_format == 'dot':
        dot_output = generator.generate_dot()
        if output:
            with open(output, 'w', encoding='utf-8') as f:
                f.write(dot_output)
            click.echo(click.style(f'Diagram generated: {output}', fg='green'), err=True)
        else:
            click.echo(dot_output)
        return

    output_file = generator.render_to_file(output, output_format)
    click.echo(click.style(f'Diagram generated: {output_file}', fg='green'), err=True)


files_argument = click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
config_option = click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
                             help='YAML configuration file')
verbose_option = click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
output_option = click.option('--output', '-o', type=click.Path(), help='Diagram output path (without extension)')
format_option = click.option('--format', '-f', 'output_format', type=click.Choice(['png', 'svg', 'pdf', 'dot']),
                             help='Diagram output format')


@click.group()
@click.version_option(version=__version__)
def cli():
    """ThreatSpec - threat models from source code annotations."""
    pass


@cli.command()
@files_argument
@config_option
@click.option('--title', '-t', help='Report heading')
@verbose_option
def report(files: tuple[str, ...], config_path: str, title: str, verbose: bool):
    """Print the coverage and component report for annotated FILES."""
    _setup_logging(verbose)
    config = _load(config_path)
    if title:
        config.title = title

    facts = _parse(files, config)
    _print_report(facts, config)


@cli.command()
@files_argument
@config_option
@output_option
@format_option
@verbose_option
def diagram(files: tuple[str, ...], config_path: str, output: str, output_format: str, verbose: bool):
    """Render the component threat diagram for FILES.

    A call graph is read from standard input when it is piped in.
    """
    _setup_logging(verbose)
    config = _load(config_path)

    facts = _parse(files, config)
    _write_diagram(facts, config, output, output_format)


@cli.command()
@files_argument
@config_option
@click.option('--title', '-t', help='Report heading')
@output_option
@format_option
@verbose_option
def run(files: tuple[str, ...], config_path: str, title: str, output: str, output_format: str, verbose: bool):
    """Print the report, then render the diagram."""
    _setup_logging(verbose)
    config = _load(config_path)
    if title:
        config.title = title

    facts = _parse(files, config)
    _print_report(facts, config)
    _write_diagram(facts, config, output, output_format)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
