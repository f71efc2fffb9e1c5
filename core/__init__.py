"""
Station Exporter - Core
Data model, error taxonomy, object pools and series aggregation.
"""
