"""Human-readable display names for type descriptors.

A ``TypeDescriptor`` is a read-only tree describing a type: its name,
namespace, generic arguments, enclosing type and array shape. Generic
arguments are flattened over the enclosing-type chain, outermost first, so a
type nested inside ``Outer<T>`` carries ``T``'s argument ahead of its own.
Enclosing types are always open definitions; the number of arguments they
carry is the offset of the nested type's own arguments.

Generic definitions keep a back-tick arity suffix in ``name``
(``Dictionary`2``), which is stripped when rendering:

    >>> slots = (generic_parameter("TKey"), generic_parameter("TValue"))
    >>> dictionary = TypeDescriptor("Dictionary`2", "System.Collections.Generic", slots)
    >>> closed = make_generic(dictionary, INT32, STRING)
    >>> get_type_display_name(closed)
    'System.Collections.Generic.Dictionary<int, string>'
    >>> get_type_display_name(closed, full_name=False)
    'Dictionary<int, string>'

``describe_type`` builds descriptors from Python runtime types so the same
formatter can render classes, ``typing.Generic`` subclasses and parameterized
aliases such as ``dict[str, list[int]]``.
"""

from __future__ import annotations

import sys
import types
import typing
from typing import Final, NamedTuple, TypeVar

_GENERIC_ARITY_MARKER: Final[str] = "`"
_DEFAULT_NESTED_TYPE_DELIMITER: Final[str] = "+"

_BUILT_IN_TYPE_NAMES: Final[dict[str, str]] = {
    "System.Void": "void",
    "System.Boolean": "bool",
    "System.Byte": "byte",
    "System.Char": "char",
    "System.Decimal": "decimal",
    "System.Double": "double",
    "System.Single": "float",
    "System.Int16": "short",
    "System.Int32": "int",
    "System.Int64": "long",
    "System.Object": "object",
    "System.SByte": "sbyte",
    "System.String": "string",
    "System.UInt16": "ushort",
    "System.UInt32": "uint",
    "System.UInt64": "ulong",
}


class TypeDescriptor(NamedTuple):
    """Read-only description of a type, consumed by ``get_type_display_name``."""

    name: str
    namespace: str | None = None
    generic_arguments: tuple[TypeDescriptor, ...] = ()
    declaring_type: TypeDescriptor | None = None
    element_type: TypeDescriptor | None = None
    array_rank: int = 0
    is_generic_parameter: bool = False

    @property
    def is_array(self) -> bool:
        return self.element_type is not None

    @property
    def is_generic(self) -> bool:
        return len(self.generic_arguments) > 0

    @property
    def is_nested(self) -> bool:
        return self.declaring_type is not None

    @property
    def full_name(self) -> str:
        """Namespace-qualified name with ``+`` between enclosing types."""
        if self.declaring_type is not None:
            return f"{self.declaring_type.full_name}+{self.name}"
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name


def _system(name: str) -> TypeDescriptor:
    return TypeDescriptor(name, "System")


VOID: Final[TypeDescriptor] = _system("Void")
BOOLEAN: Final[TypeDescriptor] = _system("Boolean")
BYTE: Final[TypeDescriptor] = _system("Byte")
CHAR: Final[TypeDescriptor] = _system("Char")
DECIMAL: Final[TypeDescriptor] = _system("Decimal")
DOUBLE: Final[TypeDescriptor] = _system("Double")
SINGLE: Final[TypeDescriptor] = _system("Single")
INT16: Final[TypeDescriptor] = _system("Int16")
INT32: Final[TypeDescriptor] = _system("Int32")
INT64: Final[TypeDescriptor] = _system("Int64")
OBJECT: Final[TypeDescriptor] = _system("Object")
SBYTE: Final[TypeDescriptor] = _system("SByte")
STRING: Final[TypeDescriptor] = _system("String")
UINT16: Final[TypeDescriptor] = _system("UInt16")
UINT32: Final[TypeDescriptor] = _system("UInt32")
UINT64: Final[TypeDescriptor] = _system("UInt64")

# Stands in for `...` in `tuple[int, ...]` and `Callable[..., R]`.
_ELLIPSIS: Final[TypeDescriptor] = TypeDescriptor("...")


def generic_parameter(name: str) -> TypeDescriptor:
    """Open generic slot named ``name`` (``T``, ``TKey``...)."""
    return TypeDescriptor(name, is_generic_parameter=True)


def array_of(element: TypeDescriptor, rank: int = 1) -> TypeDescriptor:
    """Array of ``element`` with ``rank`` dimensions."""
    if rank < 1:
        raise ValueError(f"Array rank must be at least 1, got {rank}")
    return TypeDescriptor(
        f"{element.name}[{',' * (rank - 1)}]",
        element.namespace,
        element_type=element,
        array_rank=rank,
    )


def make_generic(definition: TypeDescriptor, *arguments: TypeDescriptor) -> TypeDescriptor:
    """Substitute ``arguments`` for the generic parameters of ``definition``.

    ``arguments`` is the flattened list, including the slots inherited from
    enclosing types. Passing a parameter descriptor leaves that slot open.
    """
    if len(arguments) != len(definition.generic_arguments):
        raise ValueError(
            f"{definition.full_name} takes {len(definition.generic_arguments)} "
            f"generic arguments, got {len(arguments)}"
        )
    return definition._replace(generic_arguments=tuple(arguments))


class _DisplayNameOptions(NamedTuple):
    full_name: bool
    include_generic_parameter_names: bool
    include_generic_parameters: bool
    nested_type_delimiter: str


def get_type_display_name(
    descriptor: TypeDescriptor,
    *,
    full_name: bool = True,
    include_generic_parameter_names: bool = False,
    include_generic_parameters: bool = True,
    nested_type_delimiter: str = _DEFAULT_NESTED_TYPE_DELIMITER,
) -> str:
    """Pretty print a type descriptor.

    Args:
        descriptor: The type to render.
        full_name: Prefix namespace and enclosing types.
        include_generic_parameter_names: Render open slots by name (``List<T>``)
            instead of leaving them empty (``List<>``).
        include_generic_parameters: Render the ``<...>`` argument list at all.
        nested_type_delimiter: Separator between enclosing and nested types.

    Raises:
        ValueError: The descriptor is malformed (array rank out of range, or
            fewer generic arguments than its declaring type carries).
    """
    options = _DisplayNameOptions(
        full_name=full_name,
        include_generic_parameter_names=include_generic_parameter_names,
        include_generic_parameters=include_generic_parameters,
        nested_type_delimiter=nested_type_delimiter,
    )
    builder: list[str] = []
    _process_type(builder, descriptor, options)
    return "".join(builder)


def _process_type(builder: list[str], descriptor: TypeDescriptor, options: _DisplayNameOptions) -> None:
    if descriptor.is_generic:
        arguments = descriptor.generic_arguments
        _process_generic_type(builder, descriptor, arguments, len(arguments), options)
        return
    if descriptor.is_array:
        _process_array_type(builder, descriptor, options)
        return
    if descriptor.is_generic_parameter:
        if options.include_generic_parameter_names:
            builder.append(descriptor.name)
        return
    if descriptor.array_rank != 0:
        raise ValueError(f"Array rank set without an element type on {descriptor.name}")

    built_in = _BUILT_IN_TYPE_NAMES.get(descriptor.full_name)
    if built_in is not None:
        builder.append(built_in)
        return

    name = descriptor.full_name if options.full_name else descriptor.name
    builder.append(name.replace(_DEFAULT_NESTED_TYPE_DELIMITER, options.nested_type_delimiter))


def _process_array_type(
    builder: list[str], descriptor: TypeDescriptor, options: _DisplayNameOptions
) -> None:
    innermost = descriptor
    while innermost.element_type is not None:
        innermost = innermost.element_type
    _process_type(builder, innermost, options)

    current: TypeDescriptor | None = descriptor
    while current is not None and current.element_type is not None:
        if current.array_rank < 1:
            raise ValueError(f"Array rank must be at least 1, got {current.array_rank}")
        builder.append("[" + "," * (current.array_rank - 1) + "]")
        current = current.element_type


def _process_generic_type(
    builder: list[str],
    descriptor: TypeDescriptor,
    arguments: tuple[TypeDescriptor, ...],
    length: int,
    options: _DisplayNameOptions,
) -> None:
    declaring = descriptor.declaring_type
    offset = 0
    if declaring is not None:
        offset = len(declaring.generic_arguments)
        if offset > length:
            raise ValueError(
                f"{descriptor.name} carries {length} generic arguments but its declaring "
                f"type {declaring.name} needs {offset}"
            )

    if options.full_name:
        if declaring is not None:
            _process_generic_type(builder, declaring, arguments, offset, options)
            builder.append(options.nested_type_delimiter)
        elif descriptor.namespace:
            builder.append(descriptor.namespace)
            builder.append(".")

    marker = descriptor.name.find(_GENERIC_ARITY_MARKER)
    if marker <= 0:
        builder.append(descriptor.name)
        return

    builder.append(descriptor.name[:marker])
    if not options.include_generic_parameters:
        return

    builder.append("<")
    for index in range(offset, length):
        _process_type(builder, arguments[index], options)
        if index + 1 == length:
            continue
        builder.append(",")
        # Unnamed open slots collapse to "<,>".
        if options.include_generic_parameter_names or not arguments[index + 1].is_generic_parameter:
            builder.append(" ")
    builder.append(">")


def get_object_type_display_name(item: object, *, full_name: bool = True) -> str | None:
    """Display name of the runtime type of ``item``, or None for None.

    Instances of parameterized ``typing.Generic`` classes keep their
    arguments (``Box[int]()`` renders as ``Box<int>``).
    """
    if item is None:
        return None
    runtime_type: object = getattr(item, "__orig_class__", type(item))
    return get_type_display_name(describe_type(runtime_type), full_name=full_name)


# ---------------------------------------------------------------------------
# Python runtime types
# ---------------------------------------------------------------------------


def describe_type(tp: object) -> TypeDescriptor:
    """Build a descriptor for a Python class, TypeVar or parameterized alias.

    Raises:
        TypeError: ``tp`` is not something with a nameable runtime type
            (``Union``, ``Literal``, plain values...).
    """
    if isinstance(tp, TypeVar):
        return generic_parameter(tp.__name__)

    origin = typing.get_origin(tp)
    if origin is not None:
        if not isinstance(origin, type) or origin is types.UnionType:
            raise TypeError(f"Cannot describe special form {tp!r}")
        own_arguments = _describe_arguments(typing.get_args(tp))
        definition = _describe_class(origin, len(own_arguments))
        inherited = definition.generic_arguments[: len(definition.generic_arguments) - len(own_arguments)]
        return make_generic(definition, *inherited, *own_arguments)

    if isinstance(tp, type):
        return _describe_class(tp, None)

    raise TypeError(f"Cannot describe {tp!r}: expected a type, TypeVar or generic alias")


def _describe_arguments(arguments: tuple[object, ...]) -> tuple[TypeDescriptor, ...]:
    """Describe alias arguments; Callable parameter lists are flattened in place."""
    described: list[TypeDescriptor] = []
    for arg in arguments:
        if arg is Ellipsis:
            described.append(_ELLIPSIS)
        elif isinstance(arg, list):
            described.extend(_describe_arguments(tuple(arg)))
        else:
            described.append(describe_type(arg))
    return tuple(described)


def _own_parameters(cls: type, arity: int | None) -> tuple[TypeDescriptor, ...]:
    type_vars: tuple[object, ...] = getattr(cls, "__parameters__", ())
    names = [tv.__name__ for tv in type_vars if isinstance(tv, TypeVar)]
    if arity is None or arity == len(names):
        return tuple(generic_parameter(name) for name in names)
    # Builtin generics (list, dict...) declare no TypeVars.
    if arity == 1:
        return (generic_parameter("T"),)
    return tuple(generic_parameter(f"T{position}") for position in range(1, arity + 1))


def _enclosing_classes(cls: type) -> list[type]:
    """Classes enclosing ``cls`` by ``__qualname__``, outermost first."""
    parts = cls.__qualname__.split(".")
    if len(parts) == 1 or "<locals>" in parts:
        return []
    module = sys.modules.get(cls.__module__)
    if module is None:
        return []
    enclosing: list[type] = []
    current: object = module
    for part in parts[:-1]:
        current = getattr(current, part, None)
        if not isinstance(current, type):
            return []
        enclosing.append(current)
    return enclosing


def _describe_class(cls: type, arity: int | None) -> TypeDescriptor:
    namespace = None if cls.__module__ == "builtins" else cls.__module__
    declaring: TypeDescriptor | None = None
    for outer in _enclosing_classes(cls):
        declaring = _definition(outer, namespace, declaring, None)
    return _definition(cls, namespace, declaring, arity)


def _definition(
    cls: type, namespace: str | None, declaring: TypeDescriptor | None, arity: int | None
) -> TypeDescriptor:
    own = _own_parameters(cls, arity)
    inherited = declaring.generic_arguments if declaring is not None else ()
    name = cls.__name__
    if own:
        name = f"{name}{_GENERIC_ARITY_MARKER}{len(own)}"
    return TypeDescriptor(
        name,
        namespace,
        generic_arguments=inherited + own,
        declaring_type=declaring,
    )


__all__ = [
    "BOOLEAN",
    "BYTE",
    "CHAR",
    "DECIMAL",
    "DOUBLE",
    "INT16",
    "INT32",
    "INT64",
    "OBJECT",
    "SBYTE",
    "SINGLE",
    "STRING",
    "UINT16",
    "UINT32",
    "UINT64",
    "VOID",
    "TypeDescriptor",
    "array_of",
    "describe_type",
    "generic_parameter",
    "get_object_type_display_name",
    "get_type_display_name",
    "make_generic",
]
