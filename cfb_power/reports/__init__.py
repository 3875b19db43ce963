"""Reports package."""

from .excel_export import AuditExporter, ratings_to_dataframe

__all__ = ["AuditExporter", "ratings_to_dataframe"]
