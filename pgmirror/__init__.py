"""Keeps a Supabase mirror eventually consistent with PostgreSQL via LISTEN/NOTIFY"""

__version__ = "0.1.0"
