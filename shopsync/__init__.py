"""Sync engine keeping a Shopify store consistent with a Google Sheets system-of-record."""

__version__ = "0.1.0"
