"""Data models for the equivalency engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .paths import strip_indices


REASON_PLACEHOLDER = "{reason}"


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARNING"
    ERROR = "ERROR"


class ValueKind(Enum):
    NULL = "NULL"
    PRIMITIVE = "PRIMITIVE"
    STRING = "STRING"
    ENUM = "ENUM"
    CONVERTIBLE_SCALAR = "CONVERTIBLE_SCALAR"
    COLLECTION = "COLLECTION"
    DICTIONARY = "DICTIONARY"
    COMPLEX = "COMPLEX"

    @property
    def is_scalar(self) -> bool:
        return self in (
            ValueKind.PRIMITIVE,
            ValueKind.STRING,
            ValueKind.ENUM,
            ValueKind.CONVERTIBLE_SCALAR,
        )


class DiscrepancyKind(Enum):
    VALUE_MISMATCH = "VALUE_MISMATCH"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    MISSING_ON_EXPECTATION = "MISSING_ON_EXPECTATION"
    MISSING_ON_SUBJECT = "MISSING_ON_SUBJECT"
    CYCLIC_REFERENCE = "CYCLIC_REFERENCE"
    COLLECTION_LENGTH_MISMATCH = "COLLECTION_LENGTH_MISMATCH"
    DEPTH_LIMIT_REACHED = "DEPTH_LIMIT_REACHED"
    MISSING_KEY = "MISSING_KEY"
    UNEXPECTED_KEY = "UNEXPECTED_KEY"


class EnumEquivalencyMode(Enum):
    DEFAULT = "default"
    BY_VALUE = "by_value"
    BY_NAME = "by_name"


class CyclicReferenceHandling(Enum):
    THROW = "throw"
    IGNORE = "ignore"


class MemberKind(Enum):
    FIELD = "field"
    PROPERTY = "property"


class Accessibility(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"

    @classmethod
    def of(cls, name: str) -> "Accessibility":
        """Accessibility of a Python attribute name by naming convention."""
        if name.startswith("__") and not name.endswith("__"):
            return cls.PRIVATE
        if name.startswith("_"):
            return cls.PROTECTED
        return cls.PUBLIC


@dataclass
class EngineConfig:
    """Global configuration for the comparison engine."""
    default_max_depth: Optional[int] = 10
    fail_fast: bool = False
    trace_rule_application: bool = False
    log_level: Optional[LogLevel] = None


@dataclass(frozen=True)
class MemberDescriptor:
    """A field or property that can take part in a comparison."""
    name: str
    declaring_type: type
    kind: MemberKind
    value_type: Any = None
    getter_accessibility: Accessibility = Accessibility.PUBLIC
    setter_accessibility: Optional[Accessibility] = Accessibility.PUBLIC
    is_indexer: bool = False

    @property
    def is_readable(self) -> bool:
        return self.getter_accessibility is Accessibility.PUBLIC and not self.is_indexer

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "declaring_type": self.declaring_type.__name__,
            "kind": self.kind.value,
            "getter": self.getter_accessibility.value,
            "setter": self.setter_accessibility.value if self.setter_accessibility else None,
        }


@dataclass(frozen=True)
class MemberContext:
    """What selection, matching and assertion predicates get to see of a member."""
    path: str
    name: str
    runtime_type: Optional[type] = None
    declaring_type: Optional[type] = None
    value_type: Any = None
    kind: Optional[MemberKind] = None
    getter_accessibility: Optional[Accessibility] = None
    setter_accessibility: Optional[Accessibility] = None

    @classmethod
    def for_member(
        cls,
        member: MemberDescriptor,
        path: str,
        runtime_type: Optional[type] = None
    ) -> "MemberContext":
        return cls(
            path=path,
            name=member.name,
            runtime_type=runtime_type,
            declaring_type=member.declaring_type,
            value_type=member.value_type,
            kind=member.kind,
            getter_accessibility=member.getter_accessibility,
            setter_accessibility=member.setter_accessibility,
        )


@dataclass
class ComparisonNode:
    """One comparison in progress."""
    path: str
    subject: Any
    expectation: Any
    subject_kind: ValueKind
    expectation_kind: ValueKind
    depth: int = 0
    declared_type: Any = None
    member: Optional[MemberDescriptor] = None

    @property
    def is_root(self) -> bool:
        return self.depth == 0

    @property
    def runtime_type(self) -> type:
        if self.subject is None:
            return type(self.expectation)
        return type(self.subject)

    @property
    def selected_path(self) -> str:
        return strip_indices(self.path)

    @property
    def description(self) -> str:
        """How messages refer to this node."""
        if not self.path:
            return "subject"
        if self.path.startswith("["):
            return f"item{self.path}"
        return f"member {self.path}"

    def context(self) -> MemberContext:
        selected = self.selected_path
        if self.member is not None:
            return MemberContext.for_member(self.member, selected, self.runtime_type)
        name = selected.rsplit(".", 1)[-1] if selected else ""
        return MemberContext(
            path=selected,
            name=name,
            runtime_type=self.runtime_type,
            value_type=self.declared_type,
        )


def format_reason(reason: Optional[str]) -> str:
    """Render a "because" clause so it reads naturally inside a sentence."""
    if not reason or not reason.strip():
        return ""
    reason = reason.strip()
    if reason.lower().startswith("because"):
        return f" {reason}"
    return f" because {reason}"


@dataclass
class Discrepancy:
    """A single difference found during comparison."""
    path: str
    kind: DiscrepancyKind
    subject_description: str
    expectation_description: str
    template: str
    reason: Optional[str] = None

    @property
    def message(self) -> str:
        return self.template.replace(REASON_PLACEHOLDER, format_reason(self.reason))

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "subject": self.subject_description,
            "expectation": self.expectation_description,
            "message": self.message,
            "reason": self.reason,
        }


@dataclass
class TraceEntry:
    """Trace entry for rule application (when trace_rule_application=true)."""
    path: str
    rule: str
    action: str
    details: Optional[dict] = None

    def to_dict(self) -> dict:
        result = {
            "path": self.path,
            "rule": self.rule,
            "action": self.action,
        }
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class ExecutionInfo:
    """Execution metadata."""
    duration_ms: int
    timestamp: str
    engine_version: str = "1.0.0"

    def to_dict(self) -> dict:
        return {
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
            "engine_version": self.engine_version,
        }


@dataclass
class Summary:
    """Summary statistics of comparison."""
    members_checked: int = 0
    discrepancies_found: int = 0
    members_ignored: int = 0

    def to_dict(self) -> dict:
        return {
            "members_checked": self.members_checked,
            "discrepancies_found": self.discrepancies_found,
            "members_ignored": self.members_ignored,
        }


@dataclass
class EquivalencyReport:
    """Complete comparison report."""
    is_match: bool
    execution: ExecutionInfo
    summary: Summary
    discrepancies: list[Discrepancy] = field(default_factory=list)
    trace: list[TraceEntry] = field(default_factory=list)
    configuration: str = ""
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "is_match": self.is_match,
            "execution": self.execution.to_dict(),
            "summary": self.summary.to_dict(),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "configuration": self.configuration,
        }
        if self.trace:
            result["trace"] = [t.to_dict() for t in self.trace]
        return result
