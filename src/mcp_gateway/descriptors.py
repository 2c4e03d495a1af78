"""
Operation Descriptors
Declarative table of every operation a gateway exposes

Descriptors are registered at startup and the registry is frozen when the
gateway is built; after that the table cannot change.
"""

import difflib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Type

from pydantic import BaseModel

# {resource}_{action}, snake case
OPERATION_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)+$")


class OperationKind(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    COMPOSITE = "composite"


@dataclass
class AffectedScope:
    """Resolved effect of a mutating call, computed before anything changes

    `binding` is what a confirmation token is bound to (the ids or the query),
    `sample` is a short list of ids shown in dry-run previews.
    """
    count: int
    binding: Dict[str, Any] = field(default_factory=dict)
    sample: List[str] = field(default_factory=list)


# (context, params, scope) -> response data; scope is None for reads
Handler = Callable[[Any, BaseModel, Optional[AffectedScope]], Awaitable[Dict[str, Any]]]
# (context, params) -> scope
ScopeResolver = Callable[[Any, BaseModel], Awaitable[AffectedScope]]


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    kind: OperationKind
    input_model: Type[BaseModel]
    handler: Handler
    description: str = ""
    resolve_scope: Optional[ScopeResolver] = None
    dangerous: Optional[bool] = None
    idempotent: Optional[bool] = None
    adapter: Any = None
    # Not derived from name; resource names may contain underscores
    resource: Optional[str] = None

    def __post_init__(self):
        if not OPERATION_NAME_PATTERN.match(self.name):
            raise ValueError(f"Operation name '{self.name}' must follow the resource_action pattern")
        if self.mutating and self.resolve_scope is None:
            raise ValueError(f"Mutating operation '{self.name}' needs a scope resolver")
        if self.dangerous is None:
            object.__setattr__(self, "dangerous", self.kind is OperationKind.DELETE)
        if self.idempotent is None:
            object.__setattr__(self, "idempotent", self.kind is OperationKind.READ)

    @property
    def mutating(self) -> bool:
        return self.kind is not OperationKind.READ

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "resource": self.resource,
            "description": self.description,
            "dangerous": self.dangerous,
            "idempotent": self.idempotent,
            "inputSchema": self.input_schema(),
        }


class OperationRegistry:
    """Name -> descriptor table, immutable once frozen"""

    def __init__(self):
        self._operations: Dict[str, OperationDescriptor] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, descriptor: OperationDescriptor) -> OperationDescriptor:
        if self._frozen:
            raise RuntimeError(f"Cannot register '{descriptor.name}': registry is frozen")
        if descriptor.name in self._operations:
            raise ValueError(f"Operation '{descriptor.name}' is already registered")
        self._operations[descriptor.name] = descriptor
        return descriptor

    def operation(self, name: str, kind: OperationKind, input_model: Type[BaseModel], **options):
        """Decorator registering a handler function as an operation"""
        def decorator(handler: Handler) -> Handler:
            self.register(OperationDescriptor(
                name=name,
                kind=kind,
                input_model=input_model,
                handler=handler,
                description=options.pop("description", None) or (handler.__doc__ or "").strip(),
                **options,
            ))
            return handler
        return decorator

    def freeze(self) -> None:
        self._frozen = True

    def get(self, name: str) -> Optional[OperationDescriptor]:
        return self._operations.get(name)

    def suggest(self, name: str, limit: int = 3) -> List[str]:
        return difflib.get_close_matches(name, list(self._operations), n=limit)

    def names(self) -> List[str]:
        return sorted(self._operations)

    def __contains__(self, name: str) -> bool:
        return name in self._operations

    def __iter__(self) -> Iterator[OperationDescriptor]:
        return iter(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)
