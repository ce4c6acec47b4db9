"""
Topology derivation utilities.

This module derives the graph shown by the pipeline editor from a document's
stage list. Edges are never stored: a stage consumes every lane named in its
input lanes, so the graph is recomputed in full from lane names whenever the
document changes. A NetworkX view of the result is available for structural
queries (cycles, roots, leaves).
"""

from dataclasses import dataclass, field

import networkx as nx

from .models import OPEN_LANE_ISSUE_CODE, Edge, OpenLane, PipelineDocument, StageInstance, StageType


@dataclass(frozen=True)
class Topology:
    """Result of deriving a pipeline document's topology."""

    edges: list[Edge] = field(default_factory=list)
    source_exists: bool = False
    first_open_lane: OpenLane | None = None


def derive_edges(stages: list[StageInstance]) -> list[Edge]:
    """
    Derive edges from output and input lane names.

    For every output lane of every stage, one edge is emitted per stage whose
    input lanes contain that lane name. A lane without consumers yields no
    edge.

    Args:
        stages: Stage instances in document order

    Returns:
        List of edges ordered by source stage, lane, then target stage
    """
    edges = []
    for source in stages:
        for lane in source.output_lanes:
            for target in stages:
                if lane in target.input_lanes:
                    edges.append(Edge(source=source, target=target, output_lane=lane))
    return edges


def source_exists(stages: list[StageInstance]) -> bool:
    """
    Check whether the pipeline contains a source stage.

    Args:
        stages: Stage instances to inspect

    Returns:
        True if any stage is typed SOURCE
    """
    return any(stage.stage_type == StageType.SOURCE for stage in stages)


def find_first_open_lane(document: PipelineDocument) -> OpenLane | None:
    """
    Find the first output lane reported by validation as unconsumed.

    Stage issues are scanned in mapping order; the first stage carrying the
    open-lane diagnostic wins. The lane is taken from the issue's ``lane``
    field when present, otherwise from the first output lane whose name
    appears in the issue message.

    Args:
        document: Pipeline document carrying validation issues

    Returns:
        OpenLane for the reporting stage, or None if no stage reports one
    """
    for instance_name, issues in document.issues.stage_issues.items():
        issue = next(
            (issue for issue in issues if issue.has_code(OPEN_LANE_ISSUE_CODE)),
            None,
        )
        if issue is None:
            continue

        stage = document.get_stage(instance_name)
        if stage is None:
            return None

        lane_name = None
        if issue.lane is not None and issue.lane in stage.output_lanes:
            lane_name = issue.lane
        else:
            lane_name = next(
                (lane for lane in stage.output_lanes if lane in issue.message),
                None,
            )

        lane_index = stage.output_lanes.index(lane_name) if lane_name is not None else -1
        return OpenLane(stage_instance=stage, lane_name=lane_name, lane_index=lane_index)

    return None


def derive_topology(document: PipelineDocument) -> Topology:
    """
    Derive edges, source presence and the open-lane hint for a document.

    Args:
        document: Pipeline document to analyze

    Returns:
        Topology computed from scratch
    """
    return Topology(
        edges=derive_edges(document.stages),
        source_exists=source_exists(document.stages),
        first_open_lane=find_first_open_lane(document),
    )


def open_lanes(stages: list[StageInstance], edges: list[Edge]) -> list[tuple[StageInstance, str]]:
    """
    List every output lane that no stage consumes.

    Args:
        stages: Stage instances in document order
        edges: Edges derived from the same stages

    Returns:
        (stage, lane) pairs in document order
    """
    consumed = {(edge.source.instance_name, edge.output_lane) for edge in edges}
    return [
        (stage, lane)
        for stage in stages
        for lane in stage.output_lanes
        if (stage.instance_name, lane) not in consumed
    ]


def build_graph(stages: list[StageInstance], edges: list[Edge]) -> nx.MultiDiGraph:
    """
    Build a NetworkX view of the pipeline.

    Nodes are instance names carrying the stage under the ``stage`` key.
    Edges are keyed by lane name so two lanes between the same pair of
    stages stay distinct.

    Args:
        stages: Stage instances
        edges: Edges derived from the same stages

    Returns:
        MultiDiGraph of the pipeline
    """
    graph = nx.MultiDiGraph()
    for stage in stages:
        graph.add_node(stage.instance_name, stage=stage)
    for edge in edges:
        graph.add_edge(
            edge.source.instance_name,
            edge.target.instance_name,
            key=edge.output_lane,
            lane=edge.output_lane,
        )
    return graph


def has_cycles(graph: nx.MultiDiGraph) -> bool:
    """
    Check if the pipeline graph has cycles.

    Args:
        graph: Graph built by build_graph

    Returns:
        True if graph has cycles, False otherwise
    """
    return not nx.is_directed_acyclic_graph(graph)


def get_root_stages(graph: nx.MultiDiGraph) -> list[str]:
    """Instance names of stages with no incoming edge."""
    return [node for node in graph.nodes() if graph.in_degree(node) == 0]


def get_leaf_stages(graph: nx.MultiDiGraph) -> list[str]:
    """Instance names of stages with no outgoing edge."""
    return [node for node in graph.nodes() if graph.out_degree(node) == 0]
