"""Product catalog: what each store product grants."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Product:
    product_id: str
    entitlements: tuple[str, ...]
    gems: int = 0
    grace_passes: int = 0


PRODUCTS: dict[str, Product] = {
    p.product_id: p
    for p in (
        Product("grace_pass_single", ("grace_pass",), grace_passes=1),
        Product("premium_content", ("premium_devotionals",)),
        Product("support_mission_small", ("supporter_badge",), gems=100),
        Product("support_mission_medium", ("supporter_badge", "bonus_gems"), gems=250),
        Product(
            "support_mission_large",
            ("supporter_badge", "bonus_gems", "premium_devotionals"),
            gems=500,
            grace_passes=3,
        ),
        Product("ad_free_monthly", ("ad_free",)),
    )
}
