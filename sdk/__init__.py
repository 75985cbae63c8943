"""sdk - Software Development Kit for eventshub applications

Contains reusable modules for:
    - logging: Centralized logging with structured fields and request context
    - importer: XML calendar export import client
"""

__version__ = "1.1.0"
__versionInfo__ = (1, 1, 0)
__changelog__ = {
    "1.0-beta": "Initial beta release with core functionality",
    "1.1.0": "Logging request context, XML import client"
}
