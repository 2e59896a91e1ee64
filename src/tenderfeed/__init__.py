"""
TenderFeed - Canadian public tender ingestion pipeline.

Pulls procurement postings from a dozen government portals, normalizes
them into one catalog, and keeps a ledger of every ingestion run.
"""

__version__ = "0.1.0"
__app_name__ = "tenderfeed"
