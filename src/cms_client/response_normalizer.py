"""
ResponseNormalizer module converting JSON:API envelopes into simple or raw results
"""

import copy
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union

from .error_classifier import UnknownError


SIMPLE = 'simple'
RAW = 'raw'


@dataclass(frozen=True)
class Entity:
    """Generic JSON:API resource object shared by every resource type"""
    id: Optional[str]
    type: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    relationships: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'Entity':
        if not isinstance(data, dict) or 'type' not in data:
            raise UnknownError(f"Malformed resource object: {data!r}", payload=data)
        return cls(
            id=str(data['id']) if data.get('id') is not None else None,
            type=data['type'],
            attributes=copy.deepcopy(data.get('attributes') or {}),
            relationships=copy.deepcopy(data.get('relationships') or {}),
            meta=copy.deepcopy(data.get('meta') or {})
        )

    def to_simple(self) -> Dict[str, Any]:
        """Flatten into {id, type, **attributes, **relationship ids}"""
        simple: Dict[str, Any] = {'id': self.id, 'type': self.type}
        simple.update(copy.deepcopy(self.attributes))
        for name, relationship in self.relationships.items():
            if name not in simple:
                simple[name] = _relationship_ids(relationship)
        if self.meta:
            simple['meta'] = copy.deepcopy(self.meta)
        return simple


@dataclass(frozen=True)
class Envelope:
    """Wire-level response: data plus pagination meta and included records"""
    data: Union[Entity, List[Entity], None]
    meta: Dict[str, Any] = field(default_factory=dict)
    included: List[Entity] = field(default_factory=list)
    links: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_collection(self) -> bool:
        return isinstance(self.data, list)

    @property
    def total_count(self) -> Optional[int]:
        value = self.meta.get('total_count')
        return int(value) if value is not None else None

    @property
    def next_token(self) -> Optional[str]:
        return self.meta.get('next_token') or None

    @property
    def entities(self) -> List[Entity]:
        """Data as a list, whatever its cardinality"""
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return list(self.data)
        return [self.data]


def parse_envelope(payload: Any) -> Envelope:
    """
    Build an Envelope from a decoded JSON:API document

    Args:
        payload: Decoded response body, None for empty (204) responses

    Returns:
        Envelope with Entity objects for data and included

    Raises:
        UnknownError: If the document does not have the expected shape
    """
    if payload is None:
        return Envelope(data=None)

    if not isinstance(payload, dict) or 'data' not in payload:
        raise UnknownError("Response is not a JSON:API document", payload=payload)

    raw_data = payload['data']
    if raw_data is None:
        data = None
    elif isinstance(raw_data, list):
        data = [Entity.from_wire(item) for item in raw_data]
    elif isinstance(raw_data, dict):
        data = Entity.from_wire(raw_data)
    else:
        raise UnknownError("Unexpected type for JSON:API 'data' member", payload=payload)

    return Envelope(
        data=data,
        meta=copy.deepcopy(payload.get('meta') or {}),
        included=[Entity.from_wire(item) for item in payload.get('included') or []],
        links=copy.deepcopy(payload.get('links') or {})
    )


def normalize(envelope: Envelope, mode: str = SIMPLE) -> Union[Envelope, Dict[str, Any], List[Dict[str, Any]], None]:
    """
    Convert an Envelope for the caller

    Args:
        envelope: Parsed response
        mode: 'simple' for bare data, 'raw' for the untouched envelope

    Returns:
        Envelope in raw mode; list of dicts, dict or None in simple mode
    """
    if mode == RAW:
        return envelope
    if mode != SIMPLE:
        raise ValueError(f"Unsupported normalisation mode: {mode}")

    if envelope.data is None:
        return None
    if isinstance(envelope.data, list):
        return [entity.to_simple() for entity in envelope.data]
    return envelope.data.to_simple()


def _relationship_ids(relationship: Any) -> Any:
    if not isinstance(relationship, dict) or 'data' not in relationship:
        return relationship
    linkage = relationship['data']
    if linkage is None:
        return None
    if isinstance(linkage, list):
        return [item.get('id') for item in linkage if isinstance(item, dict)]
    if isinstance(linkage, dict):
        return linkage.get('id')
    return linkage
