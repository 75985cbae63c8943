"""
sdk.importer - XML calendar export import client for eventshub

API:
    from sdk.importer import EventsHubClient, parseXmlEvents, uploadXmlFiles
"""

from .xmlEvents import parseXmlEvents, elementToEvent, parseTimestamp, yesNo
from .client import (
    EventsHubClient,
    ImporterConfig,
    ImporterError,
    ImportSummary,
    loadImporterConfig,
    uploadXmlFiles,
    main
)

__all__ = [
    'parseXmlEvents', 'elementToEvent', 'parseTimestamp', 'yesNo',
    'EventsHubClient', 'ImporterConfig', 'ImporterError', 'ImportSummary',
    'loadImporterConfig', 'uploadXmlFiles', 'main'
]
