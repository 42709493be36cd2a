"""Demonstration of the lifecycle reports on synthetic retail data.

This script demonstrates:
1. Monthly Retail / Direct lifecycle classification with ranked shares
2. Rolling 52 week new customer selection with an explicit as-of date
3. Top customers selected by multi-year qualification rules
4. Class sales by customer tenure for the cooking school

Run with: python examples/lifecycle_demo.py
"""

from datetime import date
from decimal import Decimal

from customer_lifecycle.analyses import (
    ClassificationConfig,
    QualificationRule,
    label_counts,
)
from customer_lifecycle.reports import (
    RetailSnapshot,
    build_class_report,
    build_lifecycle_report,
    build_new_customer_report,
    build_top_customers_report,
)
from customer_lifecycle.synthetic import (
    SnapshotConfig,
    generate_customers,
    generate_snapshot,
)

START = date(2022, 1, 1)
END = date(2024, 12, 31)


def build_snapshot() -> RetailSnapshot:
    customers = generate_customers(500, START, date(2024, 6, 30), seed=42)
    payload = generate_snapshot(customers, START, END, config=SnapshotConfig(seed=42))
    return RetailSnapshot.from_mapping(payload)


def demo_lifecycle(snapshot: RetailSnapshot):
    """Classify every month and print the latest quarter."""
    print("\n" + "=" * 80)
    print("DEMO 1: Monthly lifecycle by channel")
    print("=" * 80)

    report = build_lifecycle_report(snapshot)
    periods = sorted({row.period for row in report.aggregates})[-3:]
    for ranked in report.ranked:
        if ranked.partition not in periods:
            continue
        row = ranked.item
        print(
            f"  {row.period} {row.segment or '-':<7} {row.label.value:<13} "
            f"customers={row.customer_count:<4} value={row.total_value:>10.2f} "
            f"share={ranked.share:.1%} rank={ranked.rank}"
        )

    print("\n  Extraction:")
    for key, value in report.stats.as_dict().items():
        print(f"    {key}: {value}")

    # Same data with a literal window where any gap reactivates
    literal = build_lifecycle_report(
        snapshot, config=ClassificationConfig(retention_window=1, reactivation_gap=1)
    )
    counts = label_counts(literal.classified)
    latest = max(period for period, _ in counts)
    print(f"\n  Distinct customers per label in {latest} (reactivation_gap=1):")
    for (period, label), count in counts.items():
        if period == latest:
            print(f"    {label.value}: {count}")


def demo_new_customers(snapshot: RetailSnapshot):
    print("\n" + "=" * 80)
    print("DEMO 2: New customers in the 52 weeks before 2024-12-01")
    print("=" * 80)

    new = build_new_customer_report(snapshot, as_of=date(2024, 12, 1))
    print(f"  {len(new)} new customers, e.g. {sorted(new)[:3]}")


def demo_top_customers(snapshot: RetailSnapshot):
    print("\n" + "=" * 80)
    print("DEMO 3: Top customers spending in both 2022 and 2023")
    print("=" * 80)

    rules = [
        QualificationRule(period=2022, min_spend=Decimal("100"), min_orders=1, max_orders=50),
        QualificationRule(period=2023, min_spend=Decimal("100")),
    ]
    ranked = build_top_customers_report(snapshot, rules, limit=10)
    for row in ranked:
        print(
            f"  #{row.rank:<3} {row.item.identity:<28} orders={row.item.total_orders:<4} "
            f"value={row.item.total_value:>9.2f} cumulative={row.cumulative_share:.1%}"
        )


def demo_class_report(snapshot: RetailSnapshot):
    print("\n" + "=" * 80)
    print("DEMO 4: Cooking school classes by customer tenure (2024)")
    print("=" * 80)

    for metrics in build_class_report(snapshot, 2024, category="COOKING SCHOOL", top_n=2):
        summary = metrics.summary
        print(
            f"  {summary.tenure_group.value:<8} {summary.class_name:<14} "
            f"sales={summary.sales:>9.2f} share={metrics.sales_share:.1%} "
            f"{metrics.top_flag}"
        )


def main():
    """Run all demonstrations."""
    snapshot = build_snapshot()
    print(f"Synthetic snapshot: {len(snapshot.headers)} orders, {len(snapshot.lines)} lines")

    demo_lifecycle(snapshot)
    demo_new_customers(snapshot)
    demo_top_customers(snapshot)
    demo_class_report(snapshot)


if __name__ == "__main__":
    main()
