"""
Static dependency graph of a container's bindings.

Nodes are identifiers, edges come from the metadata provider's declared
dependency slots of class bindings. Useful for validating a container
before the first resolution and for visualising it.
"""

from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set, Tuple
from collections import defaultdict, deque

from .bindings import Binding
from .errors import CircularDependency
from .qualifiers import identifier_name
from .scopes import ServiceScope

if TYPE_CHECKING:
    from .core import Container

_SCOPE_COLORS = {
    "singleton": "lightblue",
    "request": "lightgreen",
    "transient": "lightyellow",
}


class DependencyGraph:
    """
    Identifier-level view of a container.

    ``adj_list`` maps an identifier name to the names its class bindings
    depend on; ``lazy_edges`` holds the (consumer, dependency) pairs that
    may be satisfied by a lazy handle.
    """

    def __init__(self):
        self.adj_list: Dict[str, List[str]] = defaultdict(list)
        self.bindings: Dict[str, List[Binding]] = {}
        self.lazy_edges: Set[Tuple[str, str]] = set()

    @classmethod
    def from_container(cls, container: "Container") -> "DependencyGraph":
        graph = cls()
        dependencies_of = container._resolver.dependencies_of

        for identifier, candidates in container.registry.snapshot().items():
            name = identifier_name(identifier)
            edges: List[str] = []
            for binding in candidates:
                if binding.kind != "class":
                    continue
                for dep in dependencies_of(binding.provider.service_type):
                    target = identifier_name(dep.identifier)
                    if target not in edges:
                        edges.append(target)
                    if dep.lazy or binding.allow_lazy:
                        graph.lazy_edges.add((name, target))
            graph.add(name, list(candidates), edges)

        return graph

    def add(self, name: str, bindings: List[Binding], dependencies: List[str]) -> None:
        self.bindings[name] = bindings
        self.adj_list[name] = dependencies

    def _bound_edges(self, name: str) -> Iterator[str]:
        # Unbound dependencies are reported at resolution time, not here
        return (dep for dep in self.adj_list.get(name, ()) if dep in self.bindings)

    def _all_singleton(self, names: List[str]) -> bool:
        return all(
            b.scope is ServiceScope.SINGLETON for name in names for b in self.bindings[name]
        )

    # Cycles

    def detect_cycles(self) -> List[List[str]]:
        """
        Strongly connected components that form a cycle (Tarjan).

        A lone node only counts when it depends on itself.
        """
        counter = 0
        index: Dict[str, int] = {}
        low: Dict[str, int] = {}
        stack: List[str] = []
        on_stack: Set[str] = set()
        components: List[List[str]] = []

        def visit(name: str) -> None:
            nonlocal counter
            index[name] = low[name] = counter
            counter += 1
            stack.append(name)
            on_stack.add(name)

            for dep in self._bound_edges(name):
                if dep not in index:
                    visit(dep)
                    low[name] = min(low[name], low[dep])
                elif dep in on_stack:
                    low[name] = min(low[name], index[dep])

            if low[name] != index[name]:
                return
            component = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == name:
                    break
            components.append(component)

        for name in self.bindings:
            if name not in index:
                visit(name)

        return [
            c for c in components
            if len(c) > 1 or c[0] in self.adj_list[c[0]]
        ]

    def unbreakable_cycles(self) -> List[List[str]]:
        """
        Cycles that will fail at resolution time: some binding on the cycle
        is not a singleton, or no edge of the cycle is lazy.
        """
        failing = []
        for cycle in self.detect_cycles():
            members = set(cycle)
            breakable = self._all_singleton(cycle) and any(
                (src, dst) in self.lazy_edges
                for src in cycle for dst in self.adj_list[src] if dst in members
            )
            if not breakable:
                failing.append(cycle)
        return failing

    # Ordering

    def get_resolution_order(self) -> List[str]:
        """
        Identifiers ordered so every dependency comes before its consumers.

        Raises:
            CircularDependency: If the graph has a cycle
        """
        pending = {name: 0 for name in self.bindings}
        consumers: Dict[str, List[str]] = defaultdict(list)
        for name in self.bindings:
            for dep in self._bound_edges(name):
                pending[name] += 1
                consumers[dep].append(name)

        ready = deque(name for name, count in pending.items() if count == 0)
        order = []
        while ready:
            name = ready.popleft()
            order.append(name)
            for consumer in consumers[name]:
                pending[consumer] -= 1
                if not pending[consumer]:
                    ready.append(consumer)

        if len(order) < len(self.bindings):
            cycle = self.detect_cycles()[0]
            raise CircularDependency(
                list(reversed(cycle)) + [cycle[-1]],
                singleton_only=self._all_singleton(cycle),
            )
        return order

    # Rendering

    def _scope_label(self, name: str) -> str:
        return "/".join(sorted({b.scope.value for b in self.bindings[name]}))

    def export_dot(self) -> str:
        """
        Graphviz DOT source, nodes coloured by scope and lazy edges dashed.
        """
        out = ["digraph DependencyGraph {", "  rankdir=LR;", "  node [shape=box];"]

        for name in self.bindings:
            scope = self._scope_label(name)
            out.append(
                f'  "{name}" [label="{name}\\n({scope})" '
                f'fillcolor="{_SCOPE_COLORS.get(scope, "white")}" style=filled];'
            )

        for name in self.bindings:
            for dep in self._bound_edges(name):
                dashed = " [style=dashed]" if (name, dep) in self.lazy_edges else ""
                out.append(f'  "{name}" -> "{dep}"{dashed};')

        out.append("}")
        return "\n".join(out)

    def get_tree_view(self, root: Optional[str] = None) -> str:
        """
        Text tree of dependencies, from root or from every identifier
        nothing else depends on.
        """
        if root is not None:
            roots = [root]
        else:
            depended_on = {dep for deps in self.adj_list.values() for dep in deps}
            roots = [name for name in self.bindings if name not in depended_on]

        lines: List[str] = []
        for name in roots:
            self._render(name, "", True, (), lines)
        return "\n".join(lines)

    def _render(
        self, name: str, indent: str, last: bool, path: Tuple[str, ...], lines: List[str]
    ) -> None:
        branch = indent + ("└── " if last else "├── ")
        if name in path:
            lines.append(f"{branch}{name} (circular)")
            return
        if not self.bindings.get(name):
            lines.append(f"{branch}{name} (missing)")
            return

        lines.append(f"{branch}{name} ({self._scope_label(name)})")
        deps = self.adj_list.get(name, [])
        child_indent = indent + ("    " if last else "│   ")
        for position, dep in enumerate(deps):
            self._render(dep, child_indent, position == len(deps) - 1, path + (name,), lines)
