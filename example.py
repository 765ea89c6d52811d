"""Example usage of the equivalency comparison engine."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import SimpleNamespace
from typing import Optional

from equivalency import (
    EngineConfig,
    EquivalencyAssertionError,
    EquivalencyComparer,
    EquivalencyOptions,
)


class Status(Enum):
    PAID = 1
    PENDING = 2


class InvoiceStatus(Enum):
    PAID = 10
    PENDING = 20


@dataclass
class LineItem:
    sku: str
    quantity: int
    unit_price: float


@dataclass
class Customer:
    name: str
    email: str
    manager: Optional["Customer"] = None


@dataclass
class Invoice:
    id: str
    total: float
    status: Enum
    customer: Customer
    created_at: datetime
    line_items: list[LineItem] = field(default_factory=list)


def legacy_invoice() -> Invoice:
    """Invoice as the legacy system produces it."""
    return Invoice(
        id="INV-001",
        total=100.0,
        status=Status.PAID,
        customer=Customer("Dennis", "dennis@example.com"),
        created_at=datetime(2025, 2, 2, 10, 30),
        line_items=[
            LineItem("WIDGET-001", 5, 10.0),
            LineItem("GADGET-002", 2, 25.5),
        ],
    )


def new_invoice() -> SimpleNamespace:
    """The same invoice as the new system returns it, with its own types."""
    return SimpleNamespace(
        id="INV-001",
        total="100.0",
        status="PAID",
        customer=SimpleNamespace(name="Dennis", email="dennis@example.com", manager=None),
        created_at=datetime(2025, 2, 2, 10, 30),
        line_items=[
            SimpleNamespace(sku="GADGET-002", quantity=2, unit_price=25.5),
            SimpleNamespace(sku="WIDGET-001", quantity=5, unit_price=10.0),
        ],
    )


def main():
    print("=" * 60)
    print("Equivalency Comparison Engine - Example")
    print("=" * 60)

    engine = EquivalencyComparer()

    # Line items are matched regardless of their order
    report = engine.compare(legacy_invoice(), new_invoice(), lambda o: (
        o.comparing_enums_by_name().without_strict_ordering()
    ))

    print(f"\nMatch: {report.is_match}")
    print("\nExecution:")
    print(f"  Duration: {report.execution.duration_ms}ms")
    print(f"  Engine Version: {report.execution.engine_version}")

    print("\nSummary:")
    print(f"  Members Checked: {report.summary.members_checked}")
    print(f"  Discrepancies: {report.summary.discrepancies_found}")
    print(f"  Ignored: {report.summary.members_ignored}")

    print("\n" + "-" * 60)
    print("Full JSON Report:")
    print(json.dumps(report.to_dict(), indent=2))


def example_with_mismatch():
    """Example that demonstrates all discrepancies in one message."""
    print("\n" + "=" * 60)
    print("Example with Mismatch")
    print("=" * 60)

    expected = legacy_invoice()
    expected.customer.name = "Dennes"
    expected.line_items[0].quantity = 6
    expected.status = InvoiceStatus.PAID

    options = (EquivalencyOptions()
               .excluding(lambda o: o.created_at)
               .comparing_enums_by_name())

    try:
        EquivalencyComparer().assert_equivalent(
            legacy_invoice(), expected, options,
            "the {0} system must produce the same invoice", "new",
        )
    except EquivalencyAssertionError as e:
        print(f"\n{e}")


def example_with_cycle():
    """Example with a cyclic reference in the subject."""
    print("\n" + "=" * 60)
    print("Example with Cyclic References")
    print("=" * 60)

    subject = Customer("Dennis", "dennis@example.com")
    subject.manager = subject
    expectation = Customer("Dennis", "dennis@example.com", Customer("Dennis", "dennis@example.com"))

    engine = EquivalencyComparer()
    for configure in (None, lambda o: o.ignoring_cyclic_references()):
        report = engine.compare(subject, expectation, configure)
        print(f"\nMatch: {report.is_match}")
        for discrepancy in report.discrepancies:
            print(f"  - [{discrepancy.kind.value}] {discrepancy.path}")
            print(f"    {discrepancy.message}")


def example_with_tracing():
    """Example with rule tracing enabled."""
    print("\n" + "=" * 60)
    print("Example with Rule Tracing")
    print("=" * 60)

    config = EngineConfig(trace_rule_application=True)
    engine = EquivalencyComparer(config)

    report = engine.compare(legacy_invoice(), new_invoice(), lambda o: (
        o.excluding_pattern("$..email").comparing_enums_by_name().without_strict_ordering()
    ))

    if report.trace:
        print("\nRule Traces:")
        for trace in report.trace:
            print(f"  - {trace.path}: {trace.rule} -> {trace.action}")
            if trace.details:
                print(f"    Details: {trace.details}")


if __name__ == "__main__":
    main()
    example_with_mismatch()
    example_with_cycle()
    example_with_tracing()
