"""Connectors package — invoice sources and the CSV import path."""
from invoicepulse.connectors.base import BaseConnector
from invoicepulse.connectors.csv_connector import ArchiveMember, CSVImporter, ImportResult, extract_csv_members
from invoicepulse.connectors.memory_connector import MemoryConnector
from invoicepulse.connectors.sql_connector import SQLConnector

__all__ = [
    "ArchiveMember",
    "BaseConnector",
    "CSVImporter",
    "ImportResult",
    "MemoryConnector",
    "SQLConnector",
    "extract_csv_members",
]
