"""typegraph - Object-graph serialization to JSON with identity and type tags."""

from typegraph.codecs import (
    Codec,
    CodecRegistry,
)
from typegraph.convert import (
    Converter,
    Moment,
)
from typegraph.errors import (
    ConstructionError,
    ConversionError,
    CustomCodecError,
    DocumentError,
    GraphError,
    GraphSyntaxError,
    TypeResolutionError,
    UnresolvedReferenceError,
    UnsupportedConversionError,
)
from typegraph.formats.json import (
    from_json,
    to_json,
    tree_from_json,
)
from typegraph.identity import (
    IdentityRegistry,
)
from typegraph.kinds import (
    AtomicBoolean,
    AtomicInteger,
    AtomicLong,
    Byte,
    Calendar,
    Char,
    Float,
    Instant,
    Int,
    Kind,
    Long,
    Short,
    SqlDate,
    Timestamp,
    ZonedDateTime,
)
from typegraph.nodes import (
    GraphNode,
    NodeKind,
    NodeTree,
    UnresolvedArray,
    UnresolvedObject,
)
from typegraph.options import (
    EnumFormat,
    ReadOptions,
    TypeInfo,
    TypeNames,
    WriteOptions,
)
from typegraph.parser import TreeBuilder
from typegraph.resolver import Resolver
from typegraph.schema import (
    FieldSchema,
    ParameterSchema,
    ReflectionSchemaProvider,
    RegisteredSchemaProvider,
    SchemaProvider,
    TypeSchema,
    extract_type,
)
from typegraph.serialization import (
    from_builtins,
    to_builtins,
    tree_from_builtins,
)
from typegraph.writer import GraphWriter

__all__ = [
    # Value kinds
    "AtomicBoolean",
    "AtomicInteger",
    "AtomicLong",
    "Byte",
    "Calendar",
    "Char",
    # Codecs
    "Codec",
    "CodecRegistry",
    # Errors
    "ConstructionError",
    "ConversionError",
    # Conversion
    "Converter",
    "CustomCodecError",
    "DocumentError",
    # Options
    "EnumFormat",
    # Schema
    "FieldSchema",
    "Float",
    "GraphError",
    # Nodes
    "GraphNode",
    "GraphSyntaxError",
    # Engine
    "GraphWriter",
    "IdentityRegistry",
    "Instant",
    "Int",
    "Kind",
    "Long",
    "Moment",
    "NodeKind",
    "NodeTree",
    "ParameterSchema",
    "ReadOptions",
    "ReflectionSchemaProvider",
    "RegisteredSchemaProvider",
    "Resolver",
    "SchemaProvider",
    "Short",
    "SqlDate",
    "Timestamp",
    "TreeBuilder",
    "TypeInfo",
    "TypeNames",
    "TypeResolutionError",
    "TypeSchema",
    "UnresolvedArray",
    "UnresolvedObject",
    "UnresolvedReferenceError",
    "UnsupportedConversionError",
    "WriteOptions",
    "ZonedDateTime",
    "extract_type",
    # Serialization
    "from_builtins",
    "from_json",
    "to_builtins",
    "to_json",
    "tree_from_builtins",
    "tree_from_json",
]
