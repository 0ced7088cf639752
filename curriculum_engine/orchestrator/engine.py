"""Pipeline engine on top of LangGraph.

Nodes are declared with static edges and recovery targets. At run time every
node is wrapped so that its result, a partial state update or a
``Command(update=..., goto=...)`` directive, is turned into an explicit
Command routed through this engine's transition table:

  * a directive's ``goto`` overrides the node's static edge;
  * a node without a static edge and without a directive ends the run;
  * a node that raises has the error appended to ``errors`` and is routed to
    its recovery node, or ends the run when no recovery is reachable;
  * fatal nodes and unknown directive targets abort the run.
"""

import asyncio
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import structlog
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph
from langgraph.types import Command

from curriculum_engine.utils.logger import append_run_log

logger = structlog.get_logger(__name__)

NodeResult = Union[dict[str, Any], Command]
NodeFn = Callable[[Mapping[str, Any], Any], Awaitable[NodeResult]]


class RoutingError(Exception):
    """A routing directive or static edge names a node that does not exist."""


class NodeExecutionError(Exception):
    """A node raised; recorded into state and routed to recovery."""

    def __init__(self, node: str, cause: BaseException):
        self.node = node
        self.cause = cause
        super().__init__(f"{node}: {cause}")


class PipelineTimeoutError(Exception):
    """The run exceeded its deadline and was cancelled."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Pipeline run exceeded {timeout_seconds}s deadline")


@dataclass(frozen=True)
class NodeSpec:
    name: str
    fn: NodeFn
    recovery: Optional[str] = None
    fatal: bool = False


class PipelineGraph:
    """Declarative node/edge description, compiled against a runtime."""

    def __init__(self, state_schema: type):
        self.state_schema = state_schema
        self.nodes: dict[str, NodeSpec] = {}
        self.edges: dict[str, str] = {}
        self.entry_point: Optional[str] = None
        self.default_recovery: Optional[str] = None

    def add_node(self, name: str, fn: NodeFn, *, recovery: Optional[str] = None, fatal: bool = False) -> "PipelineGraph":
        if name in self.nodes or name == END:
            raise ValueError(f"Node '{name}' already declared")
        self.nodes[name] = NodeSpec(name, fn, recovery, fatal)
        return self

    def add_edge(self, source: str, target: str) -> "PipelineGraph":
        self.edges[source] = target
        return self

    def set_entry_point(self, name: str) -> "PipelineGraph":
        self.entry_point = name
        return self

    def set_default_recovery(self, name: str) -> "PipelineGraph":
        self.default_recovery = name
        return self

    @property
    def recovery_nodes(self) -> set[str]:
        targets = {spec.recovery for spec in self.nodes.values() if spec.recovery}
        if self.default_recovery:
            targets.add(self.default_recovery)
        return targets

    def validate(self) -> None:
        if self.entry_point not in self.nodes:
            raise RoutingError(f"Entry point '{self.entry_point}' is not a node")
        for source, target in self.edges.items():
            if source not in self.nodes:
                raise RoutingError(f"Edge source '{source}' is not a node")
            if target != END and target not in self.nodes:
                raise RoutingError(f"Edge target '{target}' is not a node")

    def compile(self, runtime: Any, recursion_limit: int = 50) -> "CompiledPipeline":
        self.validate()
        return CompiledPipeline(self, runtime, recursion_limit)


class CompiledPipeline:
    def __init__(self, graph: PipelineGraph, runtime: Any, recursion_limit: int = 50):
        self.graph = graph
        self.runtime = runtime
        self.recursion_limit = recursion_limit

        state_graph = StateGraph(graph.state_schema)
        for spec in graph.nodes.values():
            state_graph.add_node(spec.name, self._wrap(spec))
        state_graph.set_entry_point(graph.entry_point)
        self._app = state_graph.compile()

    def _recovery_target(self, spec: NodeSpec) -> Optional[str]:
        if spec.name in self.graph.recovery_nodes:
            return None
        target = spec.recovery or self.graph.default_recovery
        if target is None or target not in self.graph.nodes:
            return None
        return target

    def _resolve(self, spec: NodeSpec, result: NodeResult) -> Command:
        if isinstance(result, Command):
            goto = result.goto
            if not isinstance(goto, str) or (goto != END and goto not in self.graph.nodes):
                raise RoutingError(f"Node '{spec.name}' routed to unknown node {goto!r}")
            update = dict(result.update or {})
        else:
            goto = self.graph.edges.get(spec.name, END)
            update = dict(result or {})
        update["current_step"] = spec.name
        return Command(update=update, goto=goto)

    def _wrap(self, spec: NodeSpec) -> Callable[[Mapping[str, Any]], Awaitable[Command]]:
        async def run_node(state: Mapping[str, Any]) -> Command:
            run_id = state.get("run_id", "")
            append_run_log(run_id, "INFO", spec.name, "Node started")
            try:
                result = await spec.fn(state, self.runtime)
            except Exception as e:
                if spec.fatal:
                    logger.error("fatal_node_failed", run_id=run_id, node=spec.name, error=str(e))
                    append_run_log(run_id, "ERROR", spec.name, f"Fatal failure: {e}")
                    raise
                failure = NodeExecutionError(spec.name, e)
                target = self._recovery_target(spec)
                logger.error(
                    "node_failed",
                    run_id=run_id,
                    node=spec.name,
                    error=str(e),
                    recovery=target,
                )
                append_run_log(run_id, "ERROR", spec.name, str(failure), recovery=target)
                return Command(
                    update={"errors": [str(failure)], "failed_node": spec.name, "current_step": spec.name},
                    goto=target or END,
                )

            command = self._resolve(spec, result)
            append_run_log(run_id, "INFO", spec.name, "Node finished", next=command.goto)
            return command

        run_node.__name__ = spec.name
        return run_node

    async def run(self, initial_state: Mapping[str, Any], timeout_seconds: Optional[float] = None) -> Mapping[str, Any]:
        """Drive the graph to completion and return the final state, read-only."""
        invocation = self._app.ainvoke(dict(initial_state), config={"recursion_limit": self.recursion_limit})
        try:
            if timeout_seconds is not None:
                final_state = await asyncio.wait_for(invocation, timeout_seconds)
            else:
                final_state = await invocation
        except asyncio.TimeoutError as e:
            raise PipelineTimeoutError(timeout_seconds) from e
        except GraphRecursionError as e:
            raise RoutingError(f"Run exceeded {self.recursion_limit} node executions") from e
        return MappingProxyType(dict(final_state))
