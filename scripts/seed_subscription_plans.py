#!/usr/bin/env python3
"""
Create the payment tables (if missing) and the default subscription plans.
Run from the project root: python -m scripts.seed_subscription_plans
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models import ad, payment, subscription_plan, user, user_subscription  # noqa: F401  (register tables)
from app.models.subscription_plan import SubscriptionPlan

DEFAULT_PLANS = [
    # name, description, price (kobo), duration, ad_limit, features
    ("Basic", "For occasional sellers", 200_000, "month", 20, ["20 active ads", "Seller badge"]),
    ("Pro", "For busy sellers", 500_000, "month", 100, ["100 active ads", "Seller badge", "Shop page"]),
    ("Business", "Unlimited listings, billed yearly", 5_000_000, "year", -1, ["Unlimited ads", "Shop page", "Priority support"]),
]


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        existing = {name for (name,) in db.query(SubscriptionPlan.name).all()}
        added = 0
        for name, description, price, duration, ad_limit, features in DEFAULT_PLANS:
            if name in existing:
                continue
            db.add(SubscriptionPlan(
                name=name,
                description=description,
                price=price,
                duration=duration,
                ad_limit=ad_limit,
                features=features,
                is_active=True,
            ))
            added += 1
        db.commit()
        print(f"Subscription plans added: {added} (already present: {len(existing)})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
