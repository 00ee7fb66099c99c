# souk/services/analytics.py
# Выручка и прибыль по доставленным заказам за период

import csv
import io
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from souk.models.order import Order as OrderModel
from souk.models.setting import AdCost as AdCostModel
from souk.schemas.analytics import AdCostCreate
from souk.services.order_status import OrderStatus
from souk.services.settings import get_decimal_setting


async def read_analytics_service(db: AsyncSession, log, date_from: datetime, date_to: datetime) -> dict:
    """
    Учитываются только заказы LIVREE, созданные в периоде.
    Прибыль = выручка - себестоимость - доставка - реклама.
    """
    result = await db.execute(
        select(OrderModel).where(
            OrderModel.status == OrderStatus.LIVREE.value,
            OrderModel.created_at >= date_from,
            OrderModel.created_at <= date_to,
        )
    )
    orders = result.scalars().all()

    revenue = Decimal("0")
    product_costs = Decimal("0")
    products = {}
    by_day = defaultdict(lambda: {"count": 0, "revenue": Decimal("0")})
    for order in orders:
        revenue += Decimal(order.total_price)
        day = by_day[order.created_at.date().isoformat()]
        day["count"] += 1
        day["revenue"] += Decimal(order.total_price)
        for item in order.items:
            product_costs += Decimal(item.unit_cost) * item.quantity
            entry = products.setdefault(item.product_id, {
                "id": item.product_id,
                "title": item.product.title if item.product else str(item.product_id),
                "quantity": 0,
                "revenue": Decimal("0"),
            })
            entry["quantity"] += item.quantity
            entry["revenue"] += Decimal(item.unit_price) * item.quantity

    delivery_cost = await get_decimal_setting(db, "delivery_cost", "0")
    delivery_costs = delivery_cost * len(orders)

    result = await db.execute(
        select(AdCostModel).where(AdCostModel.date >= date_from, AdCostModel.date <= date_to)
    )
    ad_costs = sum((Decimal(c.amount) for c in result.scalars().all()), Decimal("0"))

    analytics = {
        "revenue": revenue,
        "product_costs": product_costs,
        "delivery_costs": delivery_costs,
        "ad_costs": ad_costs,
        "profit": revenue - product_costs - delivery_costs - ad_costs,
        "orders_count": len(orders),
        "top_products": sorted(products.values(), key=lambda p: p["revenue"], reverse=True)[:5],
        "orders_by_day": [{"date": d, **v} for d, v in sorted(by_day.items())],
    }
    await log.log_info("analytics", "Аналитика рассчитана", {"from": date_from, "to": date_to, "orders": len(orders)})
    return analytics


def analytics_to_csv(analytics: dict) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Métrique", "Valeur"])
    writer.writerow(["Revenu total", f"{analytics['revenue']:.2f} DH"])
    writer.writerow(["Coût produits", f"{analytics['product_costs']:.2f} DH"])
    writer.writerow(["Coût livraison", f"{analytics['delivery_costs']:.2f} DH"])
    writer.writerow(["Coût publicité", f"{analytics['ad_costs']:.2f} DH"])
    writer.writerow(["Profit net", f"{analytics['profit']:.2f} DH"])
    writer.writerow(["Nombre de commandes", analytics["orders_count"]])
    writer.writerow([])
    writer.writerow(["Produit", "Quantité", "Revenu"])
    for product in analytics["top_products"]:
        writer.writerow([product["title"], product["quantity"], f"{product['revenue']:.2f} DH"])
    return buffer.getvalue()


async def create_ad_cost_service(db: AsyncSession, log, ad_cost: AdCostCreate) -> AdCostModel:
    db_cost = AdCostModel(**ad_cost.model_dump())
    db.add(db_cost)
    await db.commit()
    await db.refresh(db_cost)
    await log.log_info("analytics", "Рекламный расход добавлен", {"id": db_cost.id, "amount": db_cost.amount})
    return db_cost
