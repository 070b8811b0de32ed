"""
Contextual matching.

Name, tag and condition qualifiers are all expressed as one predicate type,
``Constraint``, evaluated against a ``Request`` (the matcher's view of a
single resolution step).
"""

from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence

from .errors import AmbiguousBinding, NoMatchingBinding
from .qualifiers import Qualifiers, identifier_name


class Request:
    """
    One step of a resolution tree.

    Links to the request that asked for it, so conditions can inspect the
    parent identifier and the whole ancestor chain.
    """

    __slots__ = ("identifier", "qualifiers", "parent", "data", "binding")

    def __init__(
        self,
        identifier: Any,
        qualifiers: Qualifiers = Qualifiers.NONE,
        parent: Optional["Request"] = None,
        data: Optional[Mapping[str, Any]] = None,
    ):
        self.identifier = identifier
        self.qualifiers = qualifiers
        self.parent = parent
        self.data = data if data is not None else (parent.data if parent else {})
        self.binding = None

    def child(self, identifier: Any, qualifiers: Qualifiers) -> "Request":
        return Request(identifier, qualifiers, parent=self, data=self.data)

    @property
    def parent_identifier(self) -> Any:
        return self.parent.identifier if self.parent else None

    def ancestors(self) -> Iterator["Request"]:
        """Yield parent, grandparent, ... up to the root request."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def __repr__(self) -> str:
        return f"Request({identifier_name(self.identifier)}, {self.qualifiers})"


class Constraint:
    """
    Predicate over a Request deciding whether a binding is eligible.

    ``qualified`` marks constraints that consume request qualifiers (name or
    tags); they are what lets a qualified request select a binding.
    """

    __slots__ = ("predicate", "description", "qualified")

    def __init__(
        self,
        predicate: Callable[[Request], bool],
        description: str = "when(...)",
        qualified: bool = False,
    ):
        self.predicate = predicate
        self.description = description
        self.qualified = qualified

    def __call__(self, request: Request) -> bool:
        return bool(self.predicate(request))

    def __and__(self, other: "Constraint") -> "Constraint":
        return Constraint(
            lambda r: self(r) and other(r),
            f"{self.description} & {other.description}",
            qualified=self.qualified or other.qualified,
        )

    def __or__(self, other: "Constraint") -> "Constraint":
        return Constraint(
            lambda r: self(r) or other(r),
            f"({self.description} | {other.description})",
            qualified=self.qualified or other.qualified,
        )

    def __invert__(self) -> "Constraint":
        return Constraint(
            lambda r: not self(r),
            f"~{self.description}",
            qualified=self.qualified,
        )

    def __repr__(self) -> str:
        return f"Constraint({self.description})"


def named(name: str) -> Constraint:
    return Constraint(
        lambda r: r.qualifiers.name == name,
        f"named({name!r})",
        qualified=True,
    )


def tagged(key: str, value: Any) -> Constraint:
    def _match(r: Request) -> bool:
        tags = r.qualifiers.tag_map
        return key in tags and tags[key] == value

    return Constraint(_match, f"tagged({key}={value!r})", qualified=True)


def when(predicate: Callable[[Request], bool], description: Optional[str] = None) -> Constraint:
    return Constraint(predicate, description or f"when({getattr(predicate, '__name__', '...')})")


def injected_into(identifier: Any) -> Constraint:
    return Constraint(
        lambda r: r.parent_identifier == identifier,
        f"injected_into({identifier_name(identifier)})",
    )


def any_ancestor_is(identifier: Any) -> Constraint:
    return Constraint(
        lambda r: any(a.identifier == identifier for a in r.ancestors()),
        f"any_ancestor_is({identifier_name(identifier)})",
    )


def no_ancestor_is(identifier: Any) -> Constraint:
    return Constraint(
        lambda r: all(a.identifier != identifier for a in r.ancestors()),
        f"no_ancestor_is({identifier_name(identifier)})",
    )


def parent_named(name: str) -> Constraint:
    return Constraint(
        lambda r: r.parent is not None and r.parent.qualifiers.name == name,
        f"parent_named({name!r})",
    )


def parent_tagged(key: str, value: Any) -> Constraint:
    def _match(r: Request) -> bool:
        if r.parent is None:
            return False
        tags = r.parent.qualifiers.tag_map
        return key in tags and tags[key] == value

    return Constraint(_match, f"parent_tagged({key}={value!r})")


# ── Selection ────────────────────────────────────────────────────────


def is_eligible(binding: Any, request: Request) -> bool:
    """
    Unconstrained bindings are defaults: eligible only for unqualified
    requests. Constrained bindings are eligible when their predicate holds.
    """
    constraint = binding.constraint
    if constraint is None:
        return not request.qualifiers
    return constraint(request)


def eligible(candidates: Sequence[Any], request: Request) -> List[Any]:
    return [b for b in candidates if is_eligible(b, request)]


def select(
    identifier: Any,
    candidates: Sequence[Any],
    request: Request,
    path: Optional[List[str]] = None,
) -> Any:
    """Pick the single eligible binding; never guess among several."""
    matches = eligible(candidates, request)

    if len(matches) == 1:
        return matches[0]

    if not matches:
        raise NoMatchingBinding(identifier, request.qualifiers, candidates, path)

    raise AmbiguousBinding(identifier, matches, path)


def select_all(
    identifier: Any,
    candidates: Sequence[Any],
    request: Request,
    path: Optional[List[str]] = None,
) -> List[Any]:
    """
    Every eligible binding, in registration order.

    Ambiguity is relaxed. An unqualified request receives every binding
    except those whose contextual condition fails; name and tag constraints
    only filter qualified requests.
    """
    if request.qualifiers:
        matches = eligible(candidates, request)
    else:
        matches = [
            b for b in candidates
            if b.constraint is None or b.constraint.qualified or b.constraint(request)
        ]

    if not matches:
        raise NoMatchingBinding(identifier, request.qualifiers, candidates, path)

    return matches
