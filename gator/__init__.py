"""
gator - A command-line RSS aggregator.

Register users, add and follow RSS feeds, and fetch their content
into a local SQLite database.
"""

__version__ = "1.0.0"
