import os
from pathlib import Path

from dotenv import load_dotenv

from billing_dashboard.domain.ports.persistence import DuplicateRecordError
from billing_dashboard.infrastructure.persistence.sqlite import SQLitePersistence

# Price ids come from the Stripe dashboard; override them per environment.
PLANS = [
    {
        "name": "Basic",
        "price_env": "STRIPE_BASIC_PRICE_ID",
        "product_env": "STRIPE_BASIC_PRODUCT_ID",
        "amount": 999,
        "features": ["1 project", "Email support"],
    },
    {
        "name": "Pro",
        "price_env": "STRIPE_PRO_PRICE_ID",
        "product_env": "STRIPE_PRO_PRODUCT_ID",
        "amount": 2999,
        "features": ["10 projects", "Priority support", "Usage reports"],
    },
    {
        "name": "Enterprise",
        "price_env": "STRIPE_ENTERPRISE_PRICE_ID",
        "product_env": "STRIPE_ENTERPRISE_PRODUCT_ID",
        "amount": 9999,
        "features": ["Unlimited projects", "Dedicated support", "SSO"],
    },
]


def main() -> None:
    load_dotenv()

    database_path = Path(os.getenv("DATABASE_PATH", "data/billing.db")).resolve()
    persistence = SQLitePersistence(database_path)

    try:
        for plan in PLANS:
            price_id = os.getenv(plan["price_env"])
            product_id = os.getenv(plan["product_env"])
            if not price_id or not product_id:
                print(f"Skipping {plan['name']}: set {plan['price_env']} and {plan['product_env']}.")
                continue
            try:
                persistence.create_plan(
                    name=plan["name"],
                    stripe_price_id=price_id,
                    stripe_product_id=product_id,
                    amount=plan["amount"],
                    currency="usd",
                    interval="month",
                    features=plan["features"],
                )
            except DuplicateRecordError:
                print(f"{plan['name']} already seeded.")
                continue
            print(f"Seeded {plan['name']} ({price_id}).")
    finally:
        persistence.close()


if __name__ == "__main__":
    main()
