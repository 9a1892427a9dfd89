"""Mock transaction catalogue for the demo feed"""

import random
from typing import List, Optional
from copilot.models import NewTransaction

MOCK_TRANSACTIONS: List[NewTransaction] = [
    NewTransaction(merchant_name="Amazon Marketplace", amount=120.50, category="Shopping"),
    NewTransaction(merchant_name="Uber Trip", amount=25.10, category="Travel", location="Tokyo, JP"),
    NewTransaction(merchant_name="Netflix Subscription", amount=15.99, category="Subscriptions"),
    NewTransaction(merchant_name="United Airlines", amount=850.00, category="Travel", location="San Francisco, US"),
    NewTransaction(merchant_name="Whole Foods", amount=75.20, category="Groceries"),
    NewTransaction(merchant_name="Local Coffee Shop", amount=5.75, category="Food & Drink", location="Osaka, JP"),
]

# Guaranteed to trip the amount rule (and the fraud-token rule behind it)
TEST_ANOMALY = NewTransaction(
    merchant_name="Fraudulent Charge",
    amount=999.00,
    category="Shopping",
    location="Moscow, RU"
)


def random_mock_transaction(rng: Optional[random.Random] = None) -> NewTransaction:
    return (rng or random).choice(MOCK_TRANSACTIONS)
