"""
Resource Adapters
Uniform async contract between the gateway and a backing system

Concrete platform clients (mail, calendar, storage, CRM...) live outside this
package and implement ResourceAdapter. Adapters raise NotFoundError for
missing resources and TransientUpstreamError (or ConnectionError/TimeoutError)
for failures worth retrying; the gateway wraps every call in its RetryPolicy.
"""

import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .infrastructure.error_handling import NotFoundError, ValidationFailedError


class ResourceAdapter(ABC):
    """One collection of resources in a backing system"""

    id_field = "id"

    @abstractmethod
    async def list(self, filter: Mapping[str, Any], offset: int, limit: int) -> List[Dict[str, Any]]:
        """Matching resources in a stable order, sliced by offset/limit"""

    @abstractmethod
    async def get(self, resource_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def create(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a resource and return it, including its identifier"""

    @abstractmethod
    async def update(self, resource_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, resource_id: str) -> None:
        ...

    @abstractmethod
    async def match_ids(self, filter: Mapping[str, Any]) -> List[str]:
        """Identifiers of every resource matching filter"""

    async def count(self, filter: Mapping[str, Any]) -> int:
        return len(await self.match_ids(filter))


def matches(resource: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Field equality; a list value means 'any of'"""
    for key, expected in filter.items():
        actual = resource.get(key)
        if isinstance(expected, (list, tuple, set)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAdapter(ResourceAdapter):
    """Insertion-ordered in-process collection, used for demos and tests"""

    def __init__(self,
                 resource: str,
                 items: Optional[Iterable[Mapping[str, Any]]] = None,
                 id_factory: Callable[[], str] = lambda: uuid.uuid4().hex[:12]):
        self.resource = resource
        self.id_factory = id_factory
        self._items: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for item in items or ():
            record = dict(item)
            record.setdefault(self.id_field, self.id_factory())
            self._items[str(record[self.id_field])] = record

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._items

    def _require(self, resource_id: str) -> Dict[str, Any]:
        try:
            return self._items[resource_id]
        except KeyError:
            raise NotFoundError(
                f"{self.resource} '{resource_id}' not found",
                suggestion=f"Use {self.resource}_list to find valid identifiers",
            ) from None

    async def list(self, filter: Mapping[str, Any], offset: int, limit: int) -> List[Dict[str, Any]]:
        selected = [dict(r) for r in self._items.values() if matches(r, filter)]
        return selected[offset:offset + limit]

    async def get(self, resource_id: str) -> Dict[str, Any]:
        return dict(self._require(resource_id))

    async def create(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        record = dict(data)
        resource_id = str(record.get(self.id_field) or self.id_factory())
        if resource_id in self._items:
            raise ValidationFailedError(f"{self.resource} '{resource_id}' already exists")
        now = _utcnow()
        record.update({self.id_field: resource_id, "createdAt": now, "updatedAt": now})
        self._items[resource_id] = record
        return dict(record)

    async def update(self, resource_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        record = self._require(resource_id)
        if self.id_field in changes and changes[self.id_field] != resource_id:
            raise ValidationFailedError(f"The {self.id_field} of a {self.resource} cannot be changed")
        record.update(changes)
        record["updatedAt"] = _utcnow()
        return dict(record)

    async def delete(self, resource_id: str) -> None:
        self._require(resource_id)
        del self._items[resource_id]

    async def match_ids(self, filter: Mapping[str, Any]) -> List[str]:
        return [rid for rid, r in self._items.items() if matches(r, filter)]
