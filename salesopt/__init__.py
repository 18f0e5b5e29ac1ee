"""
Sales Optimization Analytics

Batch cleaning, aggregation and decision-gate pipeline over retail
transaction extracts.
"""

__version__ = "1.0.0"
