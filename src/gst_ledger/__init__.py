"""
GST Ledger - order to invoice to GST ledger pipeline for Indian e-commerce.
"""

__version__ = "1.0.0"
