from .exporter import CSV_FIELDS, DialogueExporter

__all__ = ["CSV_FIELDS", "DialogueExporter"]
