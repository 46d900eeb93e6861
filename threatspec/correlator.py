"""Correlates annotated functions with the call graph into a component threat graph."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from .callgraph import CallGraph
from .models import Component, FactModel, Function, Provenance
from .patterns import component_key

logger = logging.getLogger(__name__)

RED = 'red'
ORANGE = 'orange'
GREEN = 'darkgreen'
BLACK = 'black'

SENDS_COLOR = 'blue'
RECEIVES_COLOR = 'purple'

CALL_SHAPE = 'box'
FLOW_SHAPE = 'oval'

# Bundles with at least this many calls are summarised as counts.
SUMMARY_THRESHOLD = 3


@dataclass
class CallEdge:
    """One call from a source component into a callee function's components."""
    callee: str
    mitigations: int
    exposures: int


@dataclass
class LabelPart:
    text: str
    color: str


@dataclass
class ComponentNode:
    key: str
    zone: str
    label: str
    shape: str
    color: Optional[str] = None


@dataclass
class ThreatEdge:
    source: str
    destination: str
    calls: list[CallEdge]
    color: str
    # Each inner list is one label line.
    label: list[list[LabelPart]]


@dataclass
class FlowEdge:
    source: str
    destination: str
    subject: str
    direction: str
    color: str


@dataclass
class ComponentGraph:
    nodes: dict[str, ComponentNode] = field(default_factory=dict)
    edges: list[ThreatEdge] = field(default_factory=list)
    flows: list[FlowEdge] = field(default_factory=list)
    mitigations: Counter = field(default_factory=Counter)
    exposures: Counter = field(default_factory=Counter)


def analyze_components(facts: FactModel) -> dict[str, Component]:
    """Aggregate mitigations, exposures and actions per (zone, component)."""
    components: dict[str, Component] = {}

    def get(zone: str, name: str) -> Component:
        key = component_key(zone, name)
        if key not in components:
            components[key] = Component(key=key, zone=zone, component=name)
        return components[key]

    for function_name, function in facts.functions.items():
        for mitigation in function.mitigations:
            record = get(mitigation.zone, mitigation.component).threat(mitigation.threat)
            record.mitigations.append(Provenance(mitigation, function_name, function.file, function.line_number))
        for exposure in function.exposures:
            record = get(exposure.zone, exposure.component).threat(exposure.threat)
            record.exposures.append(Provenance(exposure, function_name, function.file, function.line_number))
        for does in function.does:
            get(does.zone, does.component).actions.append(does.action)

    return components


def node_color(mitigations: int, exposures: int) -> Optional[str]:
    """Severity of a component; None leaves the node unstyled."""
    if exposures > 0:
        return ORANGE if mitigations > 0 else RED
    if mitigations > 0:
        return GREEN
    return None


def call_color(call: CallEdge) -> str:
    return node_color(call.mitigations, call.exposures) or BLACK


def edge_color(calls: list[CallEdge]) -> str:
    """Worst severity across a bundle: red, then orange, then darkgreen, then black."""
    colors = {call_color(call) for call in calls}
    for color in (RED, ORANGE, GREEN):
        if color in colors:
            return color
    return BLACK


def edge_label(calls: list[CallEdge], clamp_other: bool = False) -> list[list[LabelPart]]:
    """
    Label lines for a bundle of calls.

    Up to two calls are listed by callee, each in its own severity color.
    Larger bundles collapse to `exposed / mitigated / other` counts, where
    `other` is the call count minus both sums and may be negative unless
    `clamp_other` is set.
    """
    if len(calls) >= SUMMARY_THRESHOLD:
        exposed = sum(call.exposures for call in calls)
        mitigated = sum(call.mitigations for call in calls)
        other = len(calls) - exposed - mitigated
        if clamp_other:
            other = max(other, 0)
        return [[LabelPart(str(exposed), RED), LabelPart(str(mitigated), GREEN), LabelPart(str(other), BLACK)]]

    lines: list[list[LabelPart]] = []
    for call in calls:
        line = [LabelPart(call.callee, call_color(call))]
        if line not in lines:
            lines.append(line)
    return lines


def callee_label(function: Function, key: str) -> str:
    if function.package:
        prefix = function.package.alias or function.package.package
        return f'{prefix}.{function.short_name}'
    return key


class ThreatGraphBuilder:
    """Builds the component graph from a fact model and a call graph."""

    def __init__(
        self,
        facts: FactModel,
        call_graph: CallGraph,
        components: Optional[dict[str, Component]] = None,
        clamp_other_count: bool = False,
    ):
        self.facts = facts
        self.call_graph = call_graph
        self.components = components if components is not None else analyze_components(facts)
        self.clamp_other_count = clamp_other_count

    def _components_of(self, function: Function, graph: ComponentGraph) -> list[str]:
        """Component keys a function touches, counting its mitigations and exposures."""
        keys = []
        for mitigation in function.mitigations:
            key = component_key(mitigation.zone, mitigation.component)
            graph.mitigations[key] += 1
            keys.append(key)
        for exposure in function.exposures:
            key = component_key(exposure.zone, exposure.component)
            graph.exposures[key] += 1
            keys.append(key)
        for does in function.does:
            keys.append(component_key(does.zone, does.component))
        return list(dict.fromkeys(keys))

    def _threat_graph(self, graph: ComponentGraph) -> dict[str, dict[str, list[CallEdge]]]:
        threat_graph: dict[str, dict[str, list[CallEdge]]] = {}

        for caller_name, caller in self.facts.functions.items():
            logger.debug("looking for caller %s", caller_name)
            graph_callees = self.call_graph.get(caller_name)
            if graph_callees is None:
                continue

            logger.debug("found caller %s", caller_name)
            sources = self._components_of(caller, graph)
            declared = [callee.callee for callee in caller.callees]

            for callee_name in dict.fromkeys(declared + list(graph_callees)):
                callee = self.facts.functions.get(callee_name)
                if callee is None:
                    continue

                logger.debug("found callee %s for caller %s", callee_name, caller_name)
                destinations = self._components_of(callee, graph)
                call = CallEdge(
                    callee=callee_label(callee, callee_name),
                    mitigations=len(callee.mitigations),
                    exposures=len(callee.exposures),
                )
                for source in sources:
                    for destination in destinations:
                        threat_graph.setdefault(source, {}).setdefault(destination, []).append(call)

        return threat_graph

    def _add_node(self, graph: ComponentGraph, key: str, zone: str, label: str, shape: str, color: Optional[str] = None) -> None:
        if key not in graph.nodes:
            graph.nodes[key] = ComponentNode(key=key, zone=zone, label=label, shape=shape, color=color)

    def _add_component_node(self, graph: ComponentGraph, key: str) -> None:
        component = self.components[key]
        color = node_color(graph.mitigations[key], graph.exposures[key])
        self._add_node(graph, key, component.zone, component.component, CALL_SHAPE, color)

    def build(self) -> ComponentGraph:
        graph = ComponentGraph()

        for source, destinations in self._threat_graph(graph).items():
            self._add_component_node(graph, source)
            for destination, calls in destinations.items():
                self._add_component_node(graph, destination)
                graph.edges.append(ThreatEdge(
                    source=source,
                    destination=destination,
                    calls=calls,
                    color=edge_color(calls),
                    label=edge_label(calls, self.clamp_other_count),
                ))

        for function in self.facts.functions.values():
            for flow in function.sendreceives:
                source = component_key(flow.from_zone, flow.from_component)
                destination = component_key(flow.to_zone, flow.to_component)
                self._add_node(graph, source, flow.from_zone, flow.from_component, FLOW_SHAPE)
                self._add_node(graph, destination, flow.to_zone, flow.to_component, FLOW_SHAPE)
                graph.flows.append(FlowEdge(
                    source=source,
                    destination=destination,
                    subject=flow.subject,
                    direction=flow.direction,
                    color=SENDS_COLOR if flow.direction == 'sends' else RECEIVES_COLOR,
                ))

        return graph


def build_component_graph(facts: FactModel, call_graph: CallGraph, clamp_other_count: bool = False) -> ComponentGraph:
    """Derive the severity-annotated component graph."""
    return ThreatGraphBuilder(facts, call_graph, clamp_other_count=clamp_other_count).build()
