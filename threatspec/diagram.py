"""Threat diagram generator."""

from graphviz import Digraph
from markupsafe import Markup

from .correlator import ComponentGraph, LabelPart
from .patterns import to_key
from .schemas import DiagramSettings


class DiagramGenerator:
    """Generates a zone-clustered component diagram from a component graph."""

    def __init__(self, component_graph: ComponentGraph, settings: DiagramSettings | None = None):
        self.graph = component_graph
        self.settings = settings or DiagramSettings()

    def _zones(self) -> dict[str, tuple[str, list[str]]]:
        """Zone key -> (zone label, node keys), in first-seen order."""
        zones: dict[str, tuple[str, list[str]]] = {}
        for node in self.graph.nodes.values():
            zone_key = to_key(node.zone)
            if zone_key not in zones:
                zones[zone_key] = (node.zone, [])
            zones[zone_key][1].append(node.key)
        return zones

    def _html_label(self, lines: list[list[LabelPart]]) -> str:
        rendered = [
            Markup(' / ').join(Markup('<font color="{}">{}</font>').format(part.color, part.text) for part in line)
            for line in lines
        ]
        return '<' + str(Markup('<br/>\n').join(rendered)) + '>'

    def generate(self, output_format: str | None = None) -> tuple[str, Digraph]:
        graph = Digraph(
            name='G',
            comment='ThreatSpec component threat graph',
            format=output_format or self.settings.format,
            engine='dot',
        )
        graph.attr(
            overlap='false', nodesep=str(self.settings.nodesep), layout='dot',
            rankdir=self.settings.rankdir, compound='true',
        )
        graph.attr('edge', lhead='', ltail='')

        for zone_key, (zone_label, node_keys) in self._zones().items():
            with graph.subgraph(name=f'cluster_{zone_key}') as subgraph:
                subgraph.attr(label=zone_label, style='dashed')
                for key in node_keys:
                    node = self.graph.nodes[key]
                    attrs = {'label': node.label, 'shape': node.shape}
                    if node.color:
                        attrs['color'] = node.color
                    subgraph.node(key, **attrs)

        for edge in self.graph.edges:
            graph.edge(edge.source, edge.destination, label=self._html_label(edge.label), color=edge.color)

        for flow in self.graph.flows:
            label = self._html_label([[LabelPart(flow.subject, flow.color)]])
            graph.edge(flow.source, flow.destination, label=label, color=flow.color)

        return graph.source, graph

    def generate_dot(self) -> str:
        source, _ = self.generate()
        return source

    def render_to_file(self, output_path: str | None = None, output_format: str | None = None) -> str:
        _, graph = self.generate(output_format)
        return graph.render(output_path or self.settings.output, cleanup=True)


def generate_diagram_dot(component_graph: ComponentGraph) -> str:
    """Generate DOT source for a component graph."""
    generator = DiagramGenerator(component_graph)
    return generator.generate_dot()
