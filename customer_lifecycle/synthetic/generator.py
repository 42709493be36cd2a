from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
import math
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

# (product_id, category, class_name)
DEFAULT_CATALOG: Tuple[Tuple[str, str, str], ...] = (
    ("SKU-100", "COOKWARE", "Skillets"),
    ("SKU-101", "COOKWARE", "Dutch Ovens"),
    ("SKU-102", "COOKWARE", "Saucepans"),
    ("SKU-200", "CUTLERY", "Chef Knives"),
    ("SKU-201", "CUTLERY", "Knife Sets"),
    ("SKU-300", "ELECTRICS", "Blenders"),
    ("SKU-301", "ELECTRICS", "Stand Mixers"),
    ("SKU-400", "COOKING SCHOOL", "Knife Skills"),
    ("SKU-401", "COOKING SCHOOL", "Pasta Making"),
    ("SKU-402", "COOKING SCHOOL", "Baking Basics"),
    ("SKU-900", "GIFT CERTIFICATES", "Gift Cards"),
)

GIFT_CARD_PRODUCT = "SKU-900"


@dataclass(frozen=True)
class Customer:
    identity: str
    acquisition_date: date


@dataclass(frozen=True)
class SnapshotConfig:
    """Configuration for synthetic retail snapshots.

    Attributes
    ----------
    churn_hazard: Monthly probability that an active customer stops buying.
    base_orders_per_month: Average orders per active customer per month.
    anonymous_orders_per_month: Average walk-in orders without an identity.
    direct_share: Share of identified orders placed online.
    pickup_share: Share of online orders collected in store (mirrored records).
    marketplace_share: Share of online orders routed through a marketplace.
    gift_card_share: Probability that an order carries a gift card line.
    return_rate: Probability that a line is a return.
    mean_unit_price: Average item price used to sample line amounts.
    price_variability: Coefficient in (0, 1] controlling price variance.
    seed: Optional RNG seed for reproducibility.
    """

    churn_hazard: float = 0.05
    base_orders_per_month: float = 0.6
    anonymous_orders_per_month: float = 5.0
    direct_share: float = 0.4
    pickup_share: float = 0.25
    marketplace_share: float = 0.05
    gift_card_share: float = 0.03
    return_rate: float = 0.02
    mean_unit_price: float = 40.0
    price_variability: float = 0.4
    seed: Optional[int] = None


def _month_range(start: date, end: date) -> List[date]:
    cur = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    out: List[date] = []
    while cur <= last:
        out.append(cur)
        if cur.month == 12:
            cur = date(cur.year + 1, 1, 1)
        else:
            cur = date(cur.year, cur.month + 1, 1)
    return out


def _poisson(rng: random.Random, lam: float) -> int:
    # Knuth's algorithm; fine for the small rates used here
    if lam <= 0:
        return 0
    limit = math.exp(-lam)
    k = 0
    p = 1.0
    while p > limit:
        k += 1
        p *= rng.random()
    return k - 1


def _sample_amount(rng: random.Random, mean: float, variability: float) -> float:
    sigma = min(max(variability, 0.01), 1.0)
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    return round(max(math.exp(rng.normalvariate(mu, sigma)), 0.01), 2)


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    seed: Optional[int] = None,
) -> List[Customer]:
    """Generate ``n`` customers with acquisition dates uniformly between start/end."""

    if n <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")

    rng = random.Random(seed)
    total_days = (end - start).days + 1
    return [
        Customer(
            identity=f"customer{i + 1}@example.com",
            acquisition_date=start + timedelta(days=rng.randrange(total_days)),
        )
        for i in range(n)
    ]


def generate_snapshot(
    customers: Sequence[Customer],
    start: date,
    end: date,
    *,
    config: Optional[SnapshotConfig] = None,
    catalog: Sequence[Tuple[str, str, str]] = DEFAULT_CATALOG,
) -> Dict[str, Any]:
    """Generate a JSON-serialisable retail snapshot between ``start`` and ``end``.

    The snapshot contains ``headers``, ``lines``, ``taxonomy`` and
    ``acquisitions`` in the layout read by
    :meth:`customer_lifecycle.reports.RetailSnapshot.from_mapping`. It
    exercises every extraction rule: store and online orders, pickup orders
    mirrored in both systems (the store copy without an e-mail), marketplace
    orders, gift card lines, returns and anonymous walk-in orders.
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    config = config or SnapshotConfig()
    rng = random.Random(config.seed)
    products = [product_id for product_id, _, _ in catalog if product_id != GIFT_CARD_PRODUCT]

    headers: List[Dict[str, Any]] = []
    lines: List[Dict[str, Any]] = []
    order_seq = 1

    def next_order_id(prefix: str) -> str:
        nonlocal order_seq
        order_id = f"{prefix}-{order_seq}"
        order_seq += 1
        return order_id

    def add_lines(
        order_id: str, channel: str, with_gift_card: bool
    ) -> List[Dict[str, Any]]:
        added: List[Dict[str, Any]] = []
        count = 1 + rng.randrange(3)
        for line_no in range(1, count + 1):
            is_return = rng.random() < config.return_rate
            amount = _sample_amount(rng, config.mean_unit_price, config.price_variability)
            quantity = 1 + rng.randrange(2)
            added.append(
                {
                    "order_id": order_id,
                    "line_id": str(line_no),
                    "product_id": rng.choice(products),
                    "quantity": -quantity if is_return else quantity,
                    "amount": str(-amount if is_return else amount),
                    "channel": channel,
                    "line_type": "return" if is_return else "sale",
                    "is_return": is_return,
                }
            )
        if with_gift_card:
            added.append(
                {
                    "order_id": order_id,
                    "line_id": str(count + 1),
                    "product_id": GIFT_CARD_PRODUCT,
                    "quantity": 1,
                    "amount": "50.00",
                    "channel": channel,
                    "line_type": "sale",
                }
            )
        lines.extend(added)
        return added

    active = {c.identity: c for c in customers if c.acquisition_date <= end}
    for month_start in _month_range(start, end):
        month_end = (
            date(month_start.year + 1, 1, 1)
            if month_start.month == 12
            else date(month_start.year, month_start.month + 1, 1)
        ) - timedelta(days=1)
        first_day = max(month_start, start)
        last_day = min(month_end, end)
        span = (last_day - first_day).days + 1

        if config.churn_hazard > 0:
            churned = [
                identity
                for identity, customer in active.items()
                if customer.acquisition_date <= month_end
                and rng.random() < config.churn_hazard
            ]
            for identity in churned:
                active.pop(identity, None)

        for customer in list(active.values()):
            if customer.acquisition_date > last_day:
                continue
            for _ in range(_poisson(rng, config.base_orders_per_month)):
                earliest = max(first_day, customer.acquisition_date)
                order_date = earliest + timedelta(
                    days=rng.randrange((last_day - earliest).days + 1)
                )
                gift_card = rng.random() < config.gift_card_share
                if rng.random() >= config.direct_share:
                    order_id = next_order_id("S")
                    headers.append(
                        {
                            "order_id": order_id,
                            "identity": customer.identity,
                            "source": "xcenter",
                            "order_type": "in_store_sale",
                            "order_date": order_date.isoformat(),
                        }
                    )
                    add_lines(order_id, "store", gift_card)
                elif rng.random() < config.pickup_share:
                    online_id = next_order_id("W")
                    store_id = next_order_id("S")
                    headers.append(
                        {
                            "order_id": online_id,
                            "identity": customer.identity,
                            "source": "oroms",
                            "order_type": "bopis",
                            "order_date": order_date.isoformat(),
                        }
                    )
                    headers.append(
                        {
                            "order_id": store_id,
                            "identity": None,
                            "source": "xcenter",
                            "order_type": "bopis",
                            "order_date": order_date.isoformat(),
                            "linked_order_id": online_id,
                        }
                    )
                    store_lines = add_lines(store_id, "store", gift_card)
                    # Mirror the same lines under the online order id
                    lines.extend(
                        dict(line, order_id=online_id, channel="web")
                        for line in store_lines
                    )
                else:
                    marketplace = rng.random() < config.marketplace_share
                    order_id = next_order_id("W")
                    headers.append(
                        {
                            "order_id": order_id,
                            "identity": customer.identity,
                            "source": "oroms",
                            "order_type": "ecommerce",
                            "order_date": order_date.isoformat(),
                        }
                    )
                    add_lines(order_id, "amazon" if marketplace else "web", gift_card)

        for _ in range(_poisson(rng, config.anonymous_orders_per_month)):
            order_id = next_order_id("S")
            order_date = first_day + timedelta(days=rng.randrange(span))
            headers.append(
                {
                    "order_id": order_id,
                    "identity": None,
                    "source": "xcenter",
                    "order_type": "in_store_sale",
                    "order_date": order_date.isoformat(),
                }
            )
            add_lines(order_id, "store", False)

    return {
        "headers": headers,
        "lines": lines,
        "taxonomy": [
            {"product_id": product_id, "category": category, "class_name": class_name}
            for product_id, category, class_name in catalog
        ],
        "acquisitions": {
            c.identity: c.acquisition_date.isoformat() for c in customers
        },
    }
