"""Error types raised while writing, parsing and resolving object graphs.

Every error carries the document path of the node being processed and the
type names involved, so that a failure deep inside a large graph can be
located without re-running the call. Syntax errors additionally carry the
line, column and character offset reported by the JSON scanner.
"""

from __future__ import annotations

from typing import Any

# Constant for error message truncation
_MAX_AVAILABLE_SHOWN = 5


class GraphError(Exception):
    """Base class for all object-graph errors.

    Attributes:
        message: The bare message, without location details
        path: Document path of the offending node (e.g. ``$.owner[2]``)
        type_names: Names of the types involved, if any
        line: 1-based line in the source text, when known
        column: 1-based column in the source text, when known
        offset: 0-based character offset in the source text, when known

    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        type_names: tuple[str, ...] = (),
        line: int | None = None,
        column: int | None = None,
        offset: int | None = None,
    ) -> None:
        self.message = message
        self.path = path
        self.type_names = type_names
        self.line = line
        self.column = column
        self.offset = offset
        super().__init__(self.format())

    def describe_location(self) -> str:
        """Describe where the error occurred."""
        parts = []
        if self.line is not None:
            parts.append(f"line {self.line}, column {self.column}")
        if self.offset is not None:
            parts.append(f"offset {self.offset}")
        if self.path is not None:
            parts.append(f"at {self.path}")
        return ", ".join(parts)

    def format(self) -> str:
        """Format the error for display."""
        text = self.message
        if location := self.describe_location():
            text = f"{text} ({location})"
        if self.type_names:
            text = f"{text} [types: {', '.join(self.type_names)}]"
        return text


class GraphSyntaxError(GraphError):
    """The text is not well-formed JSON."""


class DocumentError(GraphError):
    """The document is valid JSON but its meta keys are inconsistent.

    Examples are a ``@ref`` combined with other keys, a duplicated ``@id``
    or ``@keys``/``@items`` arrays of different lengths.
    """


class UnresolvedReferenceError(GraphError):
    """A ``@ref`` points to an id that is never defined in the document."""

    def __init__(
        self,
        ref_id: int,
        available: tuple[int, ...],
        *,
        path: str | None = None,
    ) -> None:
        self.ref_id = ref_id
        self.available = available
        shown = ", ".join(str(i) for i in available[:_MAX_AVAILABLE_SHOWN])
        if len(available) > _MAX_AVAILABLE_SHOWN:
            shown += f" ... ({len(available)} total)"
        msg = f"Unresolved reference @ref={ref_id}; defined ids: [{shown}]"
        super().__init__(msg, path=path)


class TypeResolutionError(GraphError):
    """A declared type name cannot be located.

    Recoverable: the resolver logs it and falls back to a generic container.
    """


class ConstructionError(GraphError):
    """No instantiation path succeeded for a type.

    Recoverable: the resolver logs it and falls back to a generic container.
    """


class ConversionError(GraphError, ValueError):
    """A value cannot be coerced into the requested kind or type."""

    def __init__(
        self,
        message: str,
        *,
        value: Any = None,
        path: str | None = None,
        type_names: tuple[str, ...] = (),
    ) -> None:
        self.value = value
        super().__init__(message, path=path, type_names=type_names)


class UnsupportedConversionError(ConversionError, TypeError):
    """No conversion is defined between the source and target kinds."""


class CustomCodecError(GraphError):
    """A registered codec raised while encoding or decoding.

    The original exception is attached as ``__cause__``.
    """

    def __init__(
        self,
        owner: type,
        operation: str,
        cause: BaseException,
        *,
        path: str | None = None,
    ) -> None:
        self.owner = owner
        self.operation = operation
        msg = f"Custom {operation} for {owner.__qualname__} failed: {cause!r}"
        super().__init__(msg, path=path, type_names=(owner.__qualname__,))
