"""Demo data for local runs"""

from .mock_data import MOCK_TRANSACTIONS, TEST_ANOMALY, random_mock_transaction

__all__ = ["MOCK_TRANSACTIONS", "TEST_ANOMALY", "random_mock_transaction"]
