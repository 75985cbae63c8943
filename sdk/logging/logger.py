"""
Hierarchical logger with automatic name detection.

Features:
- Auto-detects logger hierarchy from call stack (computed once, cached)
- Console output always, rotating log files when a log directory is configured
- Global disk cap enforced on every rotation
- Structured field logging

Usage:
    from sdk.logging import getLogger

    # Pattern 1: Class-level (compute once in __init__)
    class SQLiteRepository:
        def __init__(self):
            self.log = getLogger()  # 'eventshub.core.database.SQLiteRepository'

        def delete(self, uuid):
            self.log.info("Deleted event", uuid=uuid)

    # Pattern 2: Function-level
    def main():
        log = getLogger()
        log.info("Starting")
"""

# Imports
import inspect, logging, logging.handlers, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz

from .context import RequestContextFilter


# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # Singleton cache: logPath -> handler
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'maxTotalMb': 512,
    'console': True,
    'level': logging.INFO,
    'utc': False
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, maxTotalMb: int = 512,
                     console: bool = True, level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at app startup, before the
    first getLogger()).

    Args:
        logDir: Directory for log files (default: None, console only)
        maxBytes: Maximum size per log file before rotation (default: 10MB)
        backupCount: Number of backup files to keep per app (default: 5)
        maxTotalMb: Maximum total disk usage across all logs in MB (default: 512)
        console: Also log to console (default: True)
        level: Minimum log level name (default: 'INFO')
        utc: Use UTC timestamps (default: False, uses local time)
    """
    global _configured, _config

    levelValue = getattr(logging, str(level).upper(), None)
    if not isinstance(levelValue, int):
        raise ValueError(f"Unknown log level: {level}")

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'maxTotalMb': maxTotalMb, 'console': console, 'level': levelValue, 'utc': utc})

    if logDir is not None:
        Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def _autoDetectName() -> str:
    """Auto-detect logger name from call stack, e.g. 'eventshub.server.gateway.Gateway'"""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__

            # Skip frames inside this package
            if moduleName.startswith('sdk.logging'):
                continue

            if moduleName.startswith('importlib'):
                continue

            parts = moduleName.split('.')

            # 'sdk' is just a package wrapper
            if parts and parts[0] == 'sdk':
                parts = parts[1:]

            className = None
            if current.f_locals:
                if 'self' in current.f_locals:
                    className = current.f_locals['self'].__class__.__name__
                elif 'cls' in current.f_locals and isinstance(current.f_locals['cls'], type):
                    className = current.f_locals['cls'].__name__

            hierarchy = '.'.join(parts) if parts else 'unknown'
            if className:
                hierarchy = f"{hierarchy}.{className}"

            return hierarchy

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    _excluded = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs',
        'message', 'pathname', 'process', 'processName',
        'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
    }

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        structuredFields = [
            f"{key}={value}" for key, value in record.__dict__.items()
            if key not in self._excluded and not key.startswith('_')
        ]

        # Other handlers share the record, restore msg afterwards
        originalMsg = record.msg
        if structuredFields:
            record.msg = f"{originalMsg} [{', '.join(structuredFields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


class DiskLimitedRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating file handler that enforces the global disk cap after each rollover"""

    def doRollover(self):
        super().doRollover()
        _enforceDiskLimit()


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger with automatic hierarchy detection.

    Stack inspection happens once per getLogger() call; keep the returned
    logger on the instance or in a local instead of calling this per message.

    Args:
        name: Logger name (auto-detected from call stack if None)
        separateFile: If True, creates separate log file for this logger

    Returns:
        logging.Logger whose level methods accept structured fields as **kwargs
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configured_by_sdk'):
        logger.setLevel(_config['level'])

        if _config['logDir'] is not None:
            # One file per top-level app ('eventshub' from 'eventshub.core.database')
            logFilename = f"{name}.log" if separateFile else f"{name.split('.')[0]}.log"
            logPath = str(Path(_config['logDir']) / logFilename)

            if logPath not in _fileHandlers:
                fileHandler = DiskLimitedRotatingFileHandler(
                    logPath,
                    maxBytes=_config['maxBytes'],
                    backupCount=_config['backupCount'],
                    encoding='utf-8'
                )
                fileHandler.setLevel(_config['level'])
                fileHandler.addFilter(RequestContextFilter())
                fileHandler.setFormatter(StructuredFormatter(
                    '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
                    utc=_config['utc']
                ))
                _fileHandlers[logPath] = fileHandler

            logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.addFilter(RequestContextFilter())
            consoleHandler.setFormatter(StructuredFormatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            logger.addHandler(consoleHandler)

        logger._configured_by_sdk = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Add level methods that accept structured fields as **kwargs.

    log.info("Message", uuid=value) instead of log.info("Message", extra={'uuid': value})
    """
    if hasattr(logger, '_is_wrapped'):
        return logger

    def _wrap(original):
        def method(msg, *args, **kwargs):
            # exc_info is a reserved logging parameter, not a field
            excInfo = kwargs.pop('exc_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo)
            else:
                original(msg, *args, exc_info=excInfo)
        return method

    logger.debug = _wrap(logger.debug)
    logger.info = _wrap(logger.info)
    logger.warning = _wrap(logger.warning)
    logger.error = _wrap(logger.error)
    logger.critical = _wrap(logger.critical)
    logger._is_wrapped = True

    return logger


def _enforceDiskLimit():
    """Remove the oldest log files until total usage is under maxTotalMb"""
    if _config['logDir'] is None:
        return

    logDir = Path(_config['logDir'])
    maxBytes = _config['maxTotalMb'] * 1024 * 1024

    files = []
    totalSize = 0
    try:
        for filepath in logDir.rglob('*.log*'):
            if filepath.is_file():
                stat = filepath.stat()
                files.append((stat.st_mtime, stat.st_size, filepath))
                totalSize += stat.st_size
    except OSError:
        return

    if totalSize <= maxBytes:
        return

    files.sort(key=lambda x: x[0])

    for mtime, size, filepath in files:
        if totalSize <= maxBytes:
            break
        try:
            filepath.unlink()
            totalSize -= size
        except OSError:
            continue
