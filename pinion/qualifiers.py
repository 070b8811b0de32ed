"""
Identifier and qualifier value types.

Identifiers are any hashable value (usually a class or a string). Qualifiers
travel with a request and disambiguate between bindings of one identifier.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Hashable, Mapping, Optional, Tuple

from .errors import InvalidBinding

# Module-level cache: type -> "module.qualname" string
_type_name_cache: Dict[type, str] = {}


def identifier_name(identifier: Any) -> str:
    """Human readable name for an identifier (used in messages and logs)."""
    if isinstance(identifier, str):
        return identifier

    if isinstance(identifier, type):
        name = _type_name_cache.get(identifier)
        if name is None:
            name = f"{identifier.__module__}.{identifier.__qualname__}"
            _type_name_cache[identifier] = name
        return name

    return str(identifier)


@dataclass(frozen=True)
class Qualifiers:
    """
    Request-side disambiguation: a name or a set of tags.

    A name is exclusive with tags. Instances are hashable so they can take
    part in cache keys.
    """

    name: Optional[str] = None
    tags: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self):
        if isinstance(self.tags, Mapping):
            object.__setattr__(self, "tags", tuple(sorted(self.tags.items())))
        if self.name is not None and self.tags:
            raise InvalidBinding(
                f"Qualifiers accept either a name or tags, not both "
                f"(name={self.name!r}, tags={dict(self.tags)!r})"
            )

    @classmethod
    def named(cls, name: str) -> "Qualifiers":
        return cls(name=name)

    @classmethod
    def tagged(cls, **tags: Any) -> "Qualifiers":
        return cls(tags=tuple(sorted(tags.items())))

    @property
    def tag_map(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self.tags))

    def __bool__(self) -> bool:
        return self.name is not None or bool(self.tags)

    def __str__(self) -> str:
        if self.name is not None:
            return f"name={self.name}"
        if self.tags:
            return ", ".join(f"{k}={v}" for k, v in self.tags)
        return "unqualified"


Qualifiers.NONE = Qualifiers()


def as_qualifiers(value: Any) -> Qualifiers:
    """
    Normalise the qualifier forms accepted by the public API.

    Accepts None, a Qualifiers instance, a string (name) or a mapping (tags).
    """
    if value is None:
        return Qualifiers.NONE
    if isinstance(value, Qualifiers):
        return value
    if isinstance(value, str):
        return Qualifiers(name=value)
    if isinstance(value, Mapping):
        return Qualifiers(tags=tuple(sorted(value.items())))
    raise InvalidBinding(f"Unsupported qualifier value: {value!r}")


@dataclass(frozen=True)
class Dependency:
    """
    One dependency slot of a service, as reported by a metadata provider.

    Attributes:
        identifier: Service contract to resolve
        qualifiers: Name/tags bound to the nested request
        lazy: The construction callback accepts a LazyRef for this slot
        optional: Inject None when the identifier has no binding
        multiple: Inject a list with every matching instance (get_all semantics)
    """

    identifier: Hashable
    qualifiers: Qualifiers = field(default=Qualifiers.NONE)
    lazy: bool = False
    optional: bool = False
    multiple: bool = False

    def __post_init__(self):
        object.__setattr__(self, "qualifiers", as_qualifiers(self.qualifiers))


def as_dependency(value: Any) -> Dependency:
    """Normalise bare identifiers and (identifier, qualifiers) tuples."""
    if isinstance(value, Dependency):
        return value
    if isinstance(value, tuple) and len(value) == 2:
        identifier, qualifiers = value
        return Dependency(identifier, as_qualifiers(qualifiers))
    return Dependency(value)
