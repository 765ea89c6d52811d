"""Member discovery for structural comparison."""

from __future__ import annotations

import inspect
import logging
import types
import typing
from collections.abc import Mapping
from functools import cached_property
from typing import Any, Optional

from .models import Accessibility, MemberDescriptor, MemberKind


logger = logging.getLogger(__name__)

_MISSING = object()


def _is_class_var(hint: Any) -> bool:
    if hint is typing.ClassVar or typing.get_origin(hint) is typing.ClassVar:
        return True
    return isinstance(hint, str) and hint.startswith(("ClassVar", "typing.ClassVar"))


def _unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is typing.Annotated:
        return _unwrap_optional(typing.get_args(hint)[0])
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return _unwrap_optional(args[0])
        return None
    return hint


def resolve_declared_type(hint: Any) -> Optional[type]:
    """
    Turn a type hint into a class that can drive member discovery.

    Optional[X] resolves to X, list[X] to list; unions of several types,
    forward references, Any, type variables and protocols resolve to None.
    """
    hint = _unwrap_optional(hint)
    if hint is None or hint is Any:
        return None
    origin = typing.get_origin(hint)
    if origin is not None:
        hint = origin
    if not isinstance(hint, type) or hint is object:
        return None
    if getattr(hint, "_is_protocol", False):
        return None
    return hint


def element_type(hint: Any) -> Any:
    """The declared type of the items of an annotated collection."""
    hint = _unwrap_optional(hint)
    origin = typing.get_origin(hint)
    args = typing.get_args(hint)
    if origin is None or not args:
        return None
    if isinstance(origin, type) and issubclass(origin, Mapping):
        return args[1] if len(args) > 1 else None
    return args[0]


def _own_annotations(klass: type) -> dict:
    """Annotations a class declares itself, without those of its bases."""
    try:
        return dict(inspect.get_annotations(klass))
    except NameError:  # forward reference that cannot be resolved
        return {}


def _type_hints(cls: type) -> dict:
    """Resolved annotations of a class, falling back to the raw ones."""
    try:
        return typing.get_type_hints(cls)
    except Exception:  # forward references that cannot be resolved
        hints = {}
        for klass in reversed(cls.__mro__):
            hints.update(_own_annotations(klass))
        return hints


def _slot_names(klass: type) -> list[str]:
    slots = klass.__dict__.get("__slots__", ())
    if isinstance(slots, str):
        slots = (slots,)
    return [s for s in slots if s not in ("__dict__", "__weakref__")]


class MemberGraph:
    """
    Enumerates the data members of objects.

    Fields are stored attributes (instance __dict__, __slots__, annotated and
    dataclass fields, named tuple fields). Properties are getter descriptors
    on the class (property, functools.cached_property).

    An instance lives for one top-level comparison and caches the members
    declared by each type it sees.
    """

    def __init__(self):
        self._declared: dict[type, tuple[MemberDescriptor, ...]] = {}

    def declared_members(self, cls: type) -> tuple[MemberDescriptor, ...]:
        """
        Members declared by a class and its bases, most derived declaration
        winning, in base-to-derived declaration order.
        """
        if cls not in self._declared:
            self._declared[cls] = tuple(self._collect_declared(cls))
            logger.debug("Discovered %d members on %s", len(self._declared[cls]), cls.__name__)
        return self._declared[cls]

    def _collect_declared(self, cls: type) -> list[MemberDescriptor]:
        hints = _type_hints(cls)
        members: dict[str, MemberDescriptor] = {}

        for klass in reversed(cls.__mro__):
            if klass is object:
                continue
            namespace = klass.__dict__

            for name, attribute in namespace.items():
                if isinstance(attribute, property):
                    members.pop(name, None)
                    members[name] = MemberDescriptor(
                        name=name,
                        declaring_type=klass,
                        kind=MemberKind.PROPERTY,
                        value_type=self._return_hint(attribute.fget),
                        getter_accessibility=(
                            Accessibility.of(name) if attribute.fget is not None
                            else Accessibility.PRIVATE
                        ),
                        setter_accessibility=(
                            Accessibility.of(name) if attribute.fset is not None else None
                        ),
                    )
                elif isinstance(attribute, cached_property):
                    members.pop(name, None)
                    members[name] = MemberDescriptor(
                        name=name,
                        declaring_type=klass,
                        kind=MemberKind.PROPERTY,
                        value_type=self._return_hint(attribute.func),
                        getter_accessibility=Accessibility.of(name),
                        setter_accessibility=Accessibility.of(name),
                    )
                elif name in members and not isinstance(attribute, types.MemberDescriptorType):
                    # Redeclared as a method or a plain class attribute
                    del members[name]

            annotations = _own_annotations(klass)
            field_names = list(annotations)
            field_names += [n for n in _slot_names(klass) if n not in field_names]
            if isinstance(namespace.get("_fields"), tuple):
                field_names += [n for n in namespace["_fields"] if n not in field_names]

            for name in field_names:
                hint = hints.get(name, annotations.get(name))
                if _is_class_var(hint):
                    continue
                if isinstance(namespace.get(name), (property, cached_property)):
                    continue
                members.pop(name, None)
                members[name] = MemberDescriptor(
                    name=name,
                    declaring_type=klass,
                    kind=MemberKind.FIELD,
                    value_type=hint,
                    getter_accessibility=Accessibility.of(name),
                    setter_accessibility=(
                        None if getattr(klass, "__dataclass_params__", None) is not None
                        and klass.__dataclass_params__.frozen
                        else Accessibility.of(name)
                    ),
                )

        return [m for m in members.values() if not m.name.startswith("__") or not m.name.endswith("__")]

    @staticmethod
    def _return_hint(func) -> Any:
        if func is None:
            return None
        try:
            return typing.get_type_hints(func).get("return")
        except Exception:  # unresolvable forward reference
            return getattr(func, "__annotations__", {}).get("return")

    def enumerate_members(
        self,
        obj: Any,
        declared_type: Any = None,
        use_runtime_types: bool = False,
        include_fields: bool = True,
        include_properties: bool = True
    ) -> list[MemberDescriptor]:
        """
        Enumerate the readable public members of an object.

        Args:
            obj: The object to inspect
            declared_type: Type hint the owner declared for this object
            use_runtime_types: Ignore the declared type and use type(obj)
            include_fields: Include stored attributes
            include_properties: Include getter descriptors

        Returns:
            Ordered, name-deduplicated list of member descriptors
        """
        candidates = self.all_members(obj, declared_type, use_runtime_types)
        return [
            m for m in candidates
            if (include_fields and m.kind is MemberKind.FIELD)
            or (include_properties and m.kind is MemberKind.PROPERTY)
        ]

    def all_members(
        self,
        obj: Any,
        declared_type: Any = None,
        use_runtime_types: bool = False
    ) -> list[MemberDescriptor]:
        """All readable public members regardless of their kind."""
        runtime_type = type(obj)
        declared = resolve_declared_type(declared_type)

        if (
            not use_runtime_types
            and declared is not None
            and declared is not runtime_type
            and isinstance(obj, declared)
        ):
            members = [m for m in self.declared_members(declared) if self._is_present(obj, m)]
            if members:
                return [m for m in members if m.is_readable]

        members = {
            m.name: m for m in self.declared_members(runtime_type) if self._is_present(obj, m)
        }
        for name in self._instance_attributes(obj):
            if name not in members:
                members[name] = MemberDescriptor(
                    name=name,
                    declaring_type=runtime_type,
                    kind=MemberKind.FIELD,
                    getter_accessibility=Accessibility.of(name),
                    setter_accessibility=Accessibility.of(name),
                )

        return [m for m in members.values() if m.is_readable]

    @staticmethod
    def _instance_attributes(obj: Any) -> list[str]:
        try:
            namespace = vars(obj)
        except TypeError:
            return []
        return [name for name in namespace if not name.startswith("__")]

    @staticmethod
    def _is_present(obj: Any, member: MemberDescriptor) -> bool:
        """Fields declared but never assigned on this instance are absent."""
        if member.kind is MemberKind.PROPERTY:
            return True
        return getattr(obj, member.name, _MISSING) is not _MISSING


def read_member(obj: Any, member: MemberDescriptor) -> Any:
    """Read the value of a member."""
    return getattr(obj, member.name)
