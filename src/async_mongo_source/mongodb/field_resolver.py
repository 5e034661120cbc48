# src/async_mongo_source/mongodb/field_resolver.py

import dataclasses
import logging
from dataclasses import dataclass
from typing import (Any, Dict, Iterable, List, Mapping, Optional, Tuple,
                    Union)

from async_mongo_source.base.conditions import (MULTI_VALUE_OPERATORS,
                                                PATTERN_OPERATORS,
                                                CompositeCondition, Condition,
                                                ConditionNode, RawCondition)
from async_mongo_source.mongodb.transformers import (TRANSFORMERS,
                                                     PropertyTransformer)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldMapping:
    domain_name: str
    storage_name: str
    transformer: Optional[PropertyTransformer] = None


MappingSpec = Union[FieldMapping, Mapping[str, Any]]


def _as_transformer(value: Any) -> Optional[PropertyTransformer]:
    if value is None or isinstance(value, PropertyTransformer):
        return value
    if isinstance(value, str):
        try:
            return TRANSFORMERS[value]
        except KeyError:
            raise ValueError(f"Unknown transformer '{value}'") from None
    to, from_ = value
    return PropertyTransformer(to, from_)


class MongoFieldResolver:
    """
    Translates domain field names and values to their stored form and back.

    Unmapped fields pass through unchanged under their own name.
    """

    def __init__(
        self,
        mappings: Optional[
            Union[Iterable[FieldMapping], Mapping[str, MappingSpec]]
        ] = None,
    ):
        self._by_domain: Dict[str, FieldMapping] = {}
        self._by_storage: Dict[str, FieldMapping] = {}

        if isinstance(mappings, Mapping):
            items: Iterable[Tuple[Optional[str], MappingSpec]] = mappings.items()
        else:
            items = ((None, mapping) for mapping in mappings or [])

        for domain_name, spec in items:
            mapping = self._to_mapping(domain_name, spec)
            self._by_domain[mapping.domain_name] = mapping
            self._by_storage[mapping.storage_name] = mapping

    @staticmethod
    def _to_mapping(domain_name: Optional[str], spec: MappingSpec) -> FieldMapping:
        if isinstance(spec, FieldMapping):
            return spec
        if domain_name is None:
            domain_name = spec["domain_name"]
        storage_name = spec.get("name") or spec.get("storage_name") or domain_name
        return FieldMapping(
            domain_name, storage_name, _as_transformer(spec.get("transformer"))
        )

    @classmethod
    def from_model(cls, model_cls: type) -> "MongoFieldResolver":
        """
        Derives mappings from a model class.

        Pydantic models map each field to its alias; dataclasses read
        `field(metadata={"name": ..., "transformer": ...})`.
        """
        mappings: List[FieldMapping] = []
        model_fields = getattr(model_cls, "model_fields", None)
        if model_fields is not None:
            for name, info in model_fields.items():
                extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
                transformer = _as_transformer(extra.get("transformer"))
                if info.alias or transformer:
                    mappings.append(
                        FieldMapping(name, info.alias or name, transformer)
                    )
        elif dataclasses.is_dataclass(model_cls):
            for f in dataclasses.fields(model_cls):
                if "name" in f.metadata or "transformer" in f.metadata:
                    mappings.append(
                        FieldMapping(
                            f.name,
                            f.metadata.get("name", f.name),
                            _as_transformer(f.metadata.get("transformer")),
                        )
                    )
        else:
            raise TypeError(
                f"Cannot derive field mappings from {model_cls!r}: "
                f"expected a pydantic model or a dataclass"
            )
        log.debug(f"Derived {len(mappings)} field mappings from {model_cls.__name__}")
        return cls(mappings)

    # --- Field Names ---

    def get_field_mappings(self) -> Dict[str, FieldMapping]:
        return dict(self._by_domain)

    def resolve_database_field(self, domain_name: str) -> Optional[FieldMapping]:
        return self._by_domain.get(domain_name)

    def resolve_field(self, domain_name: str) -> str:
        mapping = self._by_domain.get(domain_name)
        if mapping is not None:
            return mapping.storage_name
        # Dotted paths map their first segment
        head, sep, rest = domain_name.partition(".")
        if sep and head in self._by_domain:
            return f"{self._by_domain[head].storage_name}.{rest}"
        return domain_name

    # --- Values ---

    def resolve_value(self, domain_name: str, value: Any, to_storage: bool = True) -> Any:
        mapping = self._by_domain.get(domain_name)
        if mapping is None or mapping.transformer is None:
            return value
        transform = mapping.transformer.to if to_storage else mapping.transformer.from_
        return transform(value)

    def resolve_object(self, obj: Any) -> Any:
        """Renames keys and converts values, recursing into `$operator` sub-documents."""
        if isinstance(obj, list):
            return [self.resolve_object(item) for item in obj]
        if not isinstance(obj, dict):
            return obj

        resolved: Dict[str, Any] = {}
        for key, value in obj.items():
            if key.startswith("$"):
                resolved[key] = self.resolve_object(value)
                continue
            if isinstance(value, dict) and value and all(
                str(k).startswith("$") for k in value
            ):
                value = {
                    op: self._resolve_operand(key, op, operand)
                    for op, operand in value.items()
                }
            else:
                value = self.resolve_value(key, value)
            resolved[self.resolve_field(key)] = value
        return resolved

    def _resolve_operand(self, key: str, op: str, operand: Any) -> Any:
        if op in ("$in", "$nin", "$all") and isinstance(operand, list):
            return [self.resolve_value(key, item) for item in operand]
        if op == "$each" and isinstance(operand, list):
            return [self.resolve_value(key, item) for item in operand]
        return self.resolve_value(key, operand)

    # --- Conditions and Sorting ---

    def resolve_condition(self, node: Optional[ConditionNode]) -> Optional[ConditionNode]:
        if node is None:
            return None
        match node:
            case RawCondition():
                return node
            case CompositeCondition():
                return CompositeCondition(
                    [self.resolve_condition(child) for child in node.conditions],
                    node.operator,
                )
            case Condition():
                return Condition(
                    self.resolve_field(node.field),
                    node.operator,
                    self._resolve_condition_value(node),
                )
            case _:
                raise TypeError(f"Unknown condition node type: {type(node).__name__}")

    def _resolve_condition_value(self, condition: Condition) -> Any:
        value = condition.value
        if condition.operator in PATTERN_OPERATORS:
            return value
        if condition.operator in MULTI_VALUE_OPERATORS and isinstance(
            value, (list, tuple, set)
        ):
            return [self.resolve_value(condition.field, item) for item in value]
        if isinstance(value, dict):
            return value
        return self.resolve_value(condition.field, value)

    def resolve_sort(
        self, sort: Optional[Iterable[Tuple[str, Any]]]
    ) -> Optional[List[Tuple[str, Any]]]:
        if sort is None:
            return None
        return [(self.resolve_field(name), direction) for name, direction in sort]

    # --- Whole Documents ---

    def transform_to_document(self, entity: Mapping[str, Any]) -> Dict[str, Any]:
        document: Dict[str, Any] = {}
        for key, value in entity.items():
            document[self.resolve_field(key)] = self.resolve_value(key, value)
        return document

    def transform_to_entity(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        entity: Dict[str, Any] = {}
        for key, value in document.items():
            mapping = self._by_storage.get(key)
            if mapping is None:
                entity[key] = value
                continue
            if mapping.transformer is not None:
                value = mapping.transformer.from_(value)
            entity[mapping.domain_name] = value
        return entity
