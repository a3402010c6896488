"""Turns a node tree into a typed object graph.

Resolution runs in two passes. Materialization walks the tree depth first,
instantiating each container or object and registering it under its
``@id`` before its children are resolved, so back references and cycles
resolve on the spot. References to instances that do not exist yet are
returned as placeholders and recorded as patches. The patch pass then
writes every late instance into its slot, after which sets and
composite-keyed maps are filled so hashing sees fully patched members.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from decimal import Decimal
from enum import Enum
from functools import partial
from typing import Any

from typegraph.codecs import Codec
from typegraph.errors import (
    ConstructionError,
    ConversionError,
    CustomCodecError,
    TypeResolutionError,
)
from typegraph.identity import MISSING, IdentityRegistry
from typegraph.kinds import Kind, python_type, zero_value
from typegraph.nodes import NAME_KEY, GraphNode, NodeKind, NodeTree, UnresolvedArray, UnresolvedObject
from typegraph.options import ReadOptions
from typegraph.schema import TypeSchema, extract_type, qualified_name
from typegraph.types import (
    ANY,
    AbstractSetType,
    DictType,
    EnumType,
    FrozenSetType,
    ListType,
    MappingType,
    ObjectType,
    ScalarType,
    SequenceType,
    SetType,
    TupleType,
    TypeDef,
    default_container,
    element_type,
    key_value_types,
    narrow,
)

logger = logging.getLogger(__name__)

type Target = type | Kind | None

_ARRAY_TYPES = (list, tuple, set, frozenset)
_CONTAINER_TYPES = (*_ARRAY_TYPES, dict)

_PLACEHOLDERS: dict[Kind, Any] = {
    Kind.BIG_INTEGER: 0,
    Kind.BIG_DECIMAL: Decimal(0),
    Kind.STRING: "",
}


class _Pending:
    """Placeholder for a reference whose target is not materialized yet."""

    __slots__ = ("ref_id",)

    def __init__(self, ref_id: int) -> None:
        self.ref_id = ref_id

    def __repr__(self) -> str:
        return f"_Pending({self.ref_id})"


def _placeholder(typedef: TypeDef) -> Any:
    """Stand-in argument for a required constructor parameter."""
    match narrow(typedef):
        case ScalarType(kind=kind):
            if kind in _PLACEHOLDERS:
                return _PLACEHOLDERS[kind]
            return zero_value(kind)
        case ListType() | SequenceType():
            return []
        case DictType() | MappingType():
            return {}
        case SetType() | AbstractSetType():
            return set()
        case FrozenSetType():
            return frozenset()
        case TupleType():
            return ()
        case _:
            return None


class Resolver:
    """Materializes a :class:`NodeTree` into Python objects.

    Example:
        tree = TreeBuilder().build(data)
        graph = Resolver().resolve(tree, root_type=list[Point])

    """

    def __init__(self, options: ReadOptions | None = None) -> None:
        self.options = options if options is not None else ReadOptions()
        self._names = self.options.type_names

    def resolve(self, tree: NodeTree, root_type: Any = None) -> Any:
        """Resolve a tree.

        Args:
            tree: Tree produced by :class:`~typegraph.parser.TreeBuilder`
            root_type: Static type of the root value, if known

        Returns:
            The root of the materialized object graph

        Raises:
            ConversionError: If a scalar cannot be converted and the options
                are not lenient
            CustomCodecError: If a registered decoder raises

        """
        self._registry = IdentityRegistry()
        self._patches: list[Callable[[], None]] = []
        self._fills: list[Callable[[], None]] = []

        static = extract_type(root_type) if root_type is not None else ANY
        root = self._resolve(tree.root, static)

        for patch in self._patches:
            patch()
        for fill in self._fills:
            fill()
        logger.debug(
            "Resolved graph: %d ids, %d patches, %d deferred fills",
            len(self._registry.ids()),
            len(self._patches),
            len(self._fills),
        )
        return self._value(root)

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def _value(self, item: Any) -> Any:
        if isinstance(item, _Pending):
            return self._registry.resolve(item.ref_id)
        return item

    def _register(self, node: GraphNode, instance: Any) -> Any:
        if node.id is not None:
            self._registry.register(node.id, instance)
        node.instance = instance
        return instance

    def _patch_item(self, container: Any, key: Any, pending: _Pending) -> None:
        container[key] = self._value(pending)

    def _fill_set(self, instance: set[Any], items: list[Any]) -> None:
        instance.update(self._value(item) for item in items)

    def _fill_map(self, instance: dict[Any, Any], keys: list[Any], items: list[Any]) -> None:
        for key, item in zip(keys, items, strict=True):
            instance[self._value(key)] = self._value(item)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _resolve(self, node: GraphNode, static: TypeDef) -> Any:
        if node.ref is not None:
            instance = self._registry.resolve(node.ref)
            return _Pending(node.ref) if instance is MISSING else instance

        target = self._target(node, static)

        codec_type = target if isinstance(target, type) else None
        if isinstance(target, Kind) and node.type_name is None:
            codec_type = python_type(target)
        if codec_type is not None and (codec := self._decoder(codec_type)) is not None:
            return self._decode(node, codec_type, codec)

        if node.kind is NodeKind.SCALAR:
            result = self._resolve_scalar(node, target)
            node.instance = result
            return result
        if node.kind is NodeKind.ARRAY:
            return self._resolve_array(node, target, static)
        if isinstance(target, Kind):
            return self._resolve_kind_object(node, target)
        if isinstance(target, type) and issubclass(target, Enum):
            return self._resolve_enum(node, target)
        if (
            target is None
            or node.keys is not None
            or issubclass(target, _CONTAINER_TYPES)
        ):
            return self._resolve_map(node, target, static)
        return self._resolve_object(node, target)

    def _target(self, node: GraphNode, static: TypeDef) -> Target:
        """Explicit ``@type`` first, then the static type, else None."""
        if node.type_name is not None:
            resolved = self._names.resolve(node.type_name)
            if resolved is None:
                error = TypeResolutionError(
                    f"Unknown type '{node.type_name}'",
                    path=node.path,
                    type_names=(node.type_name,),
                )
                logger.warning("%s; falling back to a generic container", error)
            return resolved

        static = narrow(static)
        match static:
            case ScalarType(kind=kind):
                return kind
            case EnumType(cls=cls) | ObjectType(cls=cls):
                return cls
            case _:
                return default_container(static)

    def _decoder(self, cls: type) -> Codec[Any] | None:
        codec = self.options.codecs.lookup(cls)
        if codec is None or codec.decode is None:
            return None
        return codec

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def _convert(
        self,
        value: Any,
        target: type | Kind,
        node: GraphNode,
        source: Kind | None = None,
    ) -> Any:
        converter = self.options.converter
        try:
            if isinstance(target, Kind):
                return converter.convert(value, source, target)  # type: ignore[union-attr]
            return converter.convert_to(value, target)  # type: ignore[union-attr]
        except ConversionError as exc:
            if not self.options.lenient:
                names = exc.type_names or (str(target),)
                raise type(exc)(
                    exc.message,
                    value=exc.value,
                    path=node.path,
                    type_names=names,
                ) from exc
            zero = zero_value(target) if isinstance(target, Kind) else None
            logger.warning("Substituting %r at %s: %s", zero, node.path, exc.message)
            return zero

    def _resolve_scalar(self, node: GraphNode, target: Target) -> Any:
        value = node.value
        if value is None or target is None:
            return value
        if isinstance(target, Kind):
            if target is Kind.TYPE_REFERENCE and isinstance(value, str):
                found = self._names.resolve(value)
                if isinstance(found, type):
                    return found
            return self._convert(value, target, node)
        if issubclass(target, Enum):
            return self._enum_member(target, value, node)
        if isinstance(value, target) or issubclass(target, _CONTAINER_TYPES):
            return value
        return self._convert(value, target, node)

    def _enum_member(self, cls: type[Enum], value: Any, node: GraphNode) -> Enum | None:
        if isinstance(value, str) and value in cls.__members__:
            return cls[value]
        try:
            return cls(value)
        except ValueError as exc:
            message = f"'{value}' is not a member of {cls.__qualname__}"
            if not self.options.lenient:
                raise ConversionError(
                    message,
                    value=value,
                    path=node.path,
                    type_names=(qualified_name(cls),),
                ) from exc
            logger.warning("Substituting None at %s: %s", node.path, message)
            return None

    def _resolve_kind_object(self, node: GraphNode, kind: Kind) -> Any:
        """Scalar written as an object: a ``value`` wrapper or a composite key set."""
        raw = {name: self._value(self._resolve(child, ANY)) for name, child in node.fields.items()}
        payload = node.envelope()
        if kind is Kind.TYPE_REFERENCE and payload is not None and isinstance(payload.value, str):
            found = self._names.resolve(payload.value)
            if isinstance(found, type):
                return self._register(node, found)
        result = self._convert(raw, kind, node, source=Kind.MAP)
        return self._register(node, result)

    def _resolve_enum(self, node: GraphNode, cls: type[Enum]) -> Any:
        name_node = node.fields.get(NAME_KEY) or node.envelope()
        # Member attributes are fixed by the class; resolve them only for their ids
        for field_name, child in node.fields.items():
            if child is not name_node:
                self._resolve(child, ANY)
        member = None
        if name_node is not None and name_node.value is not None:
            member = self._enum_member(cls, name_node.value, node)
        return self._register(node, member)

    def _plain(self, node: GraphNode) -> Any:
        """Codec payload as plain builtins."""
        if node.ref is not None:
            return self._value(self._registry.resolve(node.ref))
        if node.kind is NodeKind.SCALAR:
            return node.value
        if node.kind is NodeKind.ARRAY:
            return [self._plain(item) for item in node.items]
        if node.keys is not None:
            return dict(
                zip(
                    (self._plain(key) for key in node.keys),
                    (self._plain(item) for item in node.items),
                    strict=True,
                ),
            )
        return {name: self._plain(child) for name, child in node.fields.items()}

    def _decode(self, node: GraphNode, cls: type, codec: Codec[Any]) -> Any:
        payload_node = node.envelope() or node
        payload = self._plain(payload_node)
        try:
            result = codec.decode(payload)  # type: ignore[misc]
        except Exception as exc:
            raise CustomCodecError(cls, "decode", exc, path=node.path) from exc
        return self._register(node, result)

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _new_container(self, cls: type, default: type, node: GraphNode) -> Any:
        if cls is default:
            return default()
        try:
            return cls()
        except Exception as exc:  # noqa: BLE001
            error = ConstructionError(
                f"Cannot instantiate {qualified_name(cls)}: {exc!r}",
                path=node.path,
                type_names=(qualified_name(cls),),
            )
            logger.warning("%s; using %s", error, default.__name__)
            return default()

    def _resolve_array(self, node: GraphNode, target: Target, static: TypeDef) -> Any:
        cls = target if isinstance(target, type) and issubclass(target, _ARRAY_TYPES) else list
        items: list[Any]

        if issubclass(cls, list):
            if target is None and node.type_name is not None:
                instance = UnresolvedArray(node.type_name)
            else:
                instance = self._new_container(cls, list, node)
            self._register(node, instance)
            for i, child in enumerate(node.items):
                item = self._resolve(child, element_type(static, i))
                instance.append(item)
                if isinstance(item, _Pending):
                    self._patches.append(partial(self._patch_item, instance, i, item))
            return instance

        if issubclass(cls, set):
            instance = self._new_container(cls, set, node)
            self._register(node, instance)
            items = [self._resolve(child, element_type(static, i)) for i, child in enumerate(node.items)]
            self._fills.append(partial(self._fill_set, instance, items))
            return instance

        # Immutable containers are built once their children exist
        items = [self._resolve(child, element_type(static, i)) for i, child in enumerate(node.items)]
        if any(isinstance(item, _Pending) for item in items):
            return self._mutable_fallback(node, cls, items)
        return self._register(node, self._build_immutable(cls, items, node))

    def _mutable_fallback(self, node: GraphNode, cls: type, items: list[Any]) -> Any:
        instance: list[Any] | set[Any]
        if issubclass(cls, frozenset):
            instance = set()
            self._fills.append(partial(self._fill_set, instance, items))
        else:
            instance = list(items)
            for i, item in enumerate(items):
                if isinstance(item, _Pending):
                    self._patches.append(partial(self._patch_item, instance, i, item))
        logger.warning(
            "%s at %s contains a forward reference; materialized as %s",
            cls.__name__,
            node.path,
            type(instance).__name__,
        )
        return self._register(node, instance)

    def _build_immutable(self, cls: type, items: list[Any], node: GraphNode) -> Any:
        default = frozenset if issubclass(cls, frozenset) else tuple
        if cls is default:
            return default(items)
        try:
            if hasattr(cls, "_fields"):  # namedtuple
                return cls(*items)
            return cls(items)
        except Exception as exc:  # noqa: BLE001
            error = ConstructionError(
                f"Cannot instantiate {qualified_name(cls)}: {exc!r}",
                path=node.path,
                type_names=(qualified_name(cls),),
            )
            logger.warning("%s; using %s", error, default.__name__)
            return default(items)

    def _map_key(self, name: str, key_type: TypeDef, node: GraphNode) -> Any:
        match narrow(key_type):
            case ScalarType(kind=kind) if kind is not Kind.STRING:
                return self._convert(name, kind, node)
            case EnumType(cls=cls):
                return self._enum_member(cls, name, node)
            case _:
                return name

    def _resolve_map(
        self,
        node: GraphNode,
        target: Target,
        static: TypeDef,
        unresolved_name: str | None = None,
    ) -> Any:
        if unresolved_name is None and target is None:
            unresolved_name = node.type_name
        if unresolved_name is not None:
            instance: dict[Any, Any] = UnresolvedObject(unresolved_name)
        elif isinstance(target, type) and issubclass(target, dict):
            instance = self._new_container(target, dict, node)
        else:
            instance = {}
        self._register(node, instance)

        key_type, value_type = key_value_types(static)
        if node.keys is not None:
            keys = [self._resolve(key, key_type) for key in node.keys]
            items = [self._resolve(item, value_type) for item in node.items]
            self._fills.append(partial(self._fill_map, instance, keys, items))
            return instance

        for name, child in node.fields.items():
            key = self._map_key(name, key_type, child)
            item = self._resolve(child, value_type)
            instance[key] = item
            if isinstance(item, _Pending):
                self._patches.append(partial(self._patch_item, instance, key, item))
        return instance

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _construct_with_placeholders(self, cls: type, schema: TypeSchema) -> Any:
        args = []
        kwargs = {}
        for param in schema.parameters:
            if not param.required:
                continue
            if param.keyword:
                kwargs[param.name] = _placeholder(param.type)
            else:
                args.append(_placeholder(param.type))
        return cls(*args, **kwargs)

    def _instantiate(self, cls: type, schema: TypeSchema, node: GraphNode) -> Any:
        """Try each construction strategy in turn; MISSING if all fail."""
        strategies: tuple[tuple[str, Callable[[], Any]], ...] = (
            ("no-argument construction", cls),
            ("construction with placeholders", partial(self._construct_with_placeholders, cls, schema)),
            ("allocation", partial(cls.__new__, cls)),
        )
        for label, build in strategies:
            try:
                instance = build()
            except Exception as exc:  # noqa: BLE001
                logger.debug("%s of %s failed: %r", label, cls.__qualname__, exc)
                continue
            if isinstance(instance, cls):
                return instance

        error = ConstructionError(
            f"Cannot instantiate {qualified_name(cls)}",
            path=node.path,
            type_names=(qualified_name(cls),),
        )
        logger.warning("%s; keeping its fields in an UnresolvedObject", error)
        return MISSING

    def _assign(self, instance: Any, name: str, value: Any, *, frozen: bool) -> None:
        value = self._value(value)
        if frozen:
            object.__setattr__(instance, name, value)
        else:
            setattr(instance, name, value)

    def _unknown_field(self, instance: Any, name: str, value: Any, node: GraphNode) -> None:
        handler = self.options.missing_field_handler
        if handler is None:
            logger.warning(
                "Skipping unknown field '%s' of %s at %s",
                name,
                type(instance).__qualname__,
                node.path,
            )
            return
        if isinstance(value, _Pending):
            self._patches.append(lambda: handler(instance, name, self._value(value)))
        else:
            handler(instance, name, value)

    def _resolve_object(self, node: GraphNode, cls: type) -> Any:
        schema = self.options.schemas.schema_for(cls)
        instance = self._instantiate(cls, schema, node)
        if instance is MISSING:
            name = node.type_name or qualified_name(cls)
            return self._resolve_map(node, None, ANY, unresolved_name=name)
        self._register(node, instance)

        # Plain classes accept attributes they do not declare
        open_fields = not dataclasses.is_dataclass(cls) and hasattr(instance, "__dict__")
        for name, child in node.fields.items():
            field = schema.field(name)
            value = self._resolve(child, field.type if field is not None else ANY)
            if field is None and not open_fields:
                self._unknown_field(instance, name, value, child)
                continue
            if isinstance(value, _Pending):
                self._patches.append(
                    partial(self._assign, instance, name, value, frozen=schema.frozen),
                )
                continue
            try:
                self._assign(instance, name, value, frozen=schema.frozen)
            except AttributeError:
                self._unknown_field(instance, name, value, child)
        return instance
