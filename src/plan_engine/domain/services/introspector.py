"""Plan introspection: output schema, column lineage and rendering.

All functions are pure and deterministic for a given pipeline, so their
output is suitable for snapshot tests and for diffing two versions of a
pipeline.

Example render:

    0: Table(name='d', temporary=False) -> columns=[user_name, product, score]
    1: Extend(simple_rank=rank(), partition_by=[user_name], order_by=[score DESC]) -> columns=[...]
    2: SelectRows(simple_rank <= 2) -> columns=[user_name, product, score, simple_rank]
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from plan_engine.domain.entities.operators import (
    DropColumns,
    Extend,
    Pipeline,
    PlanNode,
    SelectColumns,
    node_position,
)
from plan_engine.domain.value_objects.schema import TableRef


def output_columns(pipeline: Pipeline) -> tuple[str, ...]:
    """Ordered output column names of the pipeline."""
    return pipeline.columns


def columns_used(pipeline: Pipeline) -> dict[str, tuple[str, ...]]:
    """Source columns actually needed to produce the pipeline's result.

    Walks the chain backwards from the output, tracking the set of
    columns still needed:

        - an Extend whose column is needed stops it being needed upstream
          and adds what it reads; an Extend nobody needs is skipped
        - nodes that narrow the schema (select/drop) restrict the set
          to what they pass through
        - every node adds the columns it reads (predicates, ordering,
          window partition and order keys)

    Returns:
        ``{table_name: columns}`` with columns in declared order; always a
        subset of the table's declared columns.
    """
    table = pipeline.source_table
    needed = set(pipeline.columns)
    for node in reversed(pipeline.operators()):
        if isinstance(node, Extend):
            if node.name not in needed:
                continue
            needed.discard(node.name)
        elif isinstance(node, (SelectColumns, DropColumns)):
            needed &= set(node.columns)
        needed |= node.columns_read()
    return {table.name: tuple(c for c in table.columns if c in needed)}


def render_node(node: PlanNode) -> str:
    """One canonical line for a node."""
    return f"{node_position(node)}: {node} -> columns=[{', '.join(node.columns)}]"


def render(pipeline: Pipeline) -> str:
    """Canonical multi-line text for a pipeline, one line per node."""
    return "\n".join(render_node(node) for node in pipeline.chain())


class DiagramNode(BaseModel):
    """A node of the plan diagram."""

    id: str
    kind: str
    label: str
    columns: list[str] = Field(default_factory=list)


class DiagramEdge(BaseModel):
    """Data flows from ``source`` into ``target``."""

    source: str
    target: str


class PlanDiagram(BaseModel):
    """Graph data for visualizing a pipeline."""

    nodes: list[DiagramNode] = Field(default_factory=list)
    edges: list[DiagramEdge] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


def diagram(pipeline: Pipeline) -> PlanDiagram:
    """Graph data for a pipeline: one diagram node per chain node."""
    result = PlanDiagram()
    previous: str | None = None
    for node in pipeline.chain():
        node_id = f"node_{node_position(node)}"
        kind = "Table" if isinstance(node, TableRef) else node.kind
        result.nodes.append(
            DiagramNode(id=node_id, kind=kind, label=str(node), columns=list(node.columns))
        )
        if previous is not None:
            result.edges.append(DiagramEdge(source=previous, target=node_id))
        previous = node_id
    return result
