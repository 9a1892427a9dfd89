"""AI Financial Co-pilot - transaction anomaly & verification pipeline"""

__version__ = "0.1.0"
