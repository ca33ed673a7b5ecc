"""EONET natural-event ETL: fetch, normalize, upsert, track runs."""

__version__ = "0.1.0"
