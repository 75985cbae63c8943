"""eventshub - single-tenant calendar event store server"""

__version__ = "1.1.0"
