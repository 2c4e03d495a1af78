"""
Response Shaping
Keeps tool outputs inside the caller's context budget

Three mutually exclusive projections, by precedence:
  returnOnlyIds -> {"id": ...}
  compact       -> scalar fields only, long text truncated
  fields        -> the id plus the requested fields that exist
With none set the full resource is returned. Datetimes become ISO 8601 strings
in every mode.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence


class ShapeMode(str, Enum):
    FULL = "full"
    IDS = "ids"
    COMPACT = "compact"
    FIELDS = "fields"


@dataclass(frozen=True)
class ShapingRequest:
    """What the caller asked for; maps to returnOnlyIds / compact / fields"""
    return_only_ids: bool = False
    compact: bool = False
    fields: Optional[Sequence[str]] = None

    @property
    def mode(self) -> ShapeMode:
        if self.return_only_ids:
            return ShapeMode.IDS
        if self.compact:
            return ShapeMode.COMPACT
        if self.fields:
            return ShapeMode.FIELDS
        return ShapeMode.FULL


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


class ResponseShaper:
    """Applies a ShapingRequest to raw resource payloads"""

    def __init__(self,
                 id_field: str = "id",
                 text_limit: int = 200,
                 compact_fields: Optional[Iterable[str]] = None):
        """
        Args:
            id_field: identifier key, always kept
            text_limit: max characters of a string field in compact mode
            compact_fields: if given, compact mode keeps only these fields
                (plus the id) instead of every scalar field
        """
        if text_limit < 1:
            raise ValueError("text_limit must be positive")
        self.id_field = id_field
        self.text_limit = text_limit
        self.compact_fields = tuple(compact_fields) if compact_fields else None

    def shape(self, resource: Dict[str, Any], request: ShapingRequest) -> Dict[str, Any]:
        mode = request.mode
        if mode is ShapeMode.IDS:
            return {self.id_field: _jsonable(resource.get(self.id_field))}
        if mode is ShapeMode.COMPACT:
            return self._compact(resource)
        if mode is ShapeMode.FIELDS:
            return self._select(resource, request.fields)
        return _jsonable(dict(resource))

    def shape_many(self, resources: Iterable[Dict[str, Any]], request: ShapingRequest) -> List[Dict[str, Any]]:
        return [self.shape(resource, request) for resource in resources]

    def _select(self, resource: Dict[str, Any], fields: Sequence[str]) -> Dict[str, Any]:
        # Unknown names are ignored
        wanted = [self.id_field] + [f for f in fields if f != self.id_field]
        return {f: _jsonable(resource[f]) for f in wanted if f in resource}

    def _compact(self, resource: Dict[str, Any]) -> Dict[str, Any]:
        shaped: Dict[str, Any] = {}
        truncated: Dict[str, int] = {}

        for key, value in resource.items():
            if key != self.id_field:
                if self.compact_fields is not None and key not in self.compact_fields:
                    continue
                if self.compact_fields is None and isinstance(value, (dict, list, tuple, set)):
                    continue
            # Only free text is truncated; ids and serialized timestamps stay whole
            if key != self.id_field and isinstance(value, str) and len(value) > self.text_limit:
                truncated[key] = len(value)
                value = value[:self.text_limit].rstrip() + "..."
            shaped[key] = _jsonable(value)

        if truncated:
            shaped["truncated"] = True
            shaped["originalLength"] = truncated
        return shaped
