"""
eventshub import client

API:
    loadImporterConfig(path)          # -> ImporterConfig from JSON
    EventsHubClient(baseUrl, ...)     # Async HTTP client for the event store
        login()                       # Fetch a bearer token
        insertEvent(event)            # Upsert one event, refresh token on 401
        close()
    uploadXmlFiles(client, paths)     # Parse and post every XML file
    main(argv)                        # `eventshub-import` console script

Environment:
    EVENTSHUB_ADMIN_USERNAME / EVENTSHUB_ADMIN_PASSWORD   login credentials
    EVENTSHUB_CA_CERTIFICATE                              CA bundle for HTTPS

Config file (JSON):
    {"host": "calendar.local", "port": 8443, "source_files_paths": ["events.xml"]}

Design:
    - One ClientSession per client, reused for every request
    - At most MAX_ATTEMPTS posts per event; a 401 refreshes the token first
    - Failures are logged and counted, the import continues with the next event
"""


# Imports
import argparse, asyncio, os, ssl, sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
import orjson
from dotenv import find_dotenv, load_dotenv

# Local imports
from eventshub.core.events import EventData
from sdk.logging import getLogger, configureLogging
from .xmlEvents import parseXmlEvents

MAX_ATTEMPTS = 3
REQUEST_TIMEOUT_SECONDS = 30


class ImporterError(Exception):
    """Import client cannot continue (bad config, login impossible)"""
    pass


@dataclass
class ImporterConfig:
    host: str
    port: int
    sourceFilesPaths: List[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    parsed: int = 0
    skipped: int = 0
    inserted: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.skipped == 0


def loadImporterConfig(path: str) -> ImporterConfig:
    """Load {host, port, source_files_paths} from a JSON file"""
    try:
        with open(path, 'rb') as f:
            data = orjson.loads(f.read())
    except (OSError, orjson.JSONDecodeError) as e:
        raise ImporterError(f"Cannot read importer config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ImporterError("Importer config must be a JSON object")

    host = data.get('host')
    port = data.get('port')
    paths = data.get('source_files_paths', [])
    if not isinstance(host, str) or not host:
        raise ImporterError("Importer config needs a 'host' string")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ImporterError("Importer config needs a 'port' between 1 and 65535")
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise ImporterError("'source_files_paths' must be a list of paths")

    return ImporterConfig(host=host, port=port, sourceFilesPaths=paths)


class EventsHubClient:
    """Thin async client for the eventshub HTTP API"""

    def __init__(self, baseUrl: str, username: str, password: str,
                 sslContext: Optional[ssl.SSLContext] = None, session: Optional[aiohttp.ClientSession] = None):
        self.baseUrl = baseUrl.rstrip('/')
        self.username = username
        self.password = password
        self.sslContext = sslContext
        self.token: Optional[str] = None
        self.log = getLogger()

        self._ownsSession = session is None
        self._session = session

    @classmethod
    def forConfig(cls, config: ImporterConfig, username: str, password: str,
                  caCertificate: Optional[str] = None, secure: bool = True) -> 'EventsHubClient':
        """Client for config.host:config.port, HTTPS trusting caCertificate when secure"""
        scheme = 'https' if secure else 'http'
        sslContext = None
        if secure:
            sslContext = ssl.create_default_context(cafile=caCertificate)
        return cls(f"{scheme}://{config.host}:{config.port}", username, password, sslContext=sslContext)

    def _getSession(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
                json_serialize=lambda obj: orjson.dumps(obj).decode('utf-8')
            )
        return self._session

    async def close(self):
        if self._session is not None and self._ownsSession:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _post(self, path: str, payload: Dict[str, Any], token: Optional[str] = None):
        headers = {'Token': token} if token else {}
        session = self._getSession()
        async with session.post(f"{self.baseUrl}/api/v1/{path}", json=payload,
                                headers=headers, ssl=self.sslContext or True) as resp:
            body = await resp.read()
            try:
                data = orjson.loads(body) if body else {}
            except orjson.JSONDecodeError:
                self.log.warning("Non-JSON response", path=path, status=resp.status)
                data = {}
            return resp.status, data if isinstance(data, dict) else {}

    async def login(self) -> str:
        """
        Exchange credentials for a token.

        Raises:
            ImporterError: Server rejected the credentials or sent no token
        """
        status, data = await self._post('login', {'username': self.username, 'password': self.password})
        token = data.get('token')
        if status != 200 or not token:
            self.log.error("Login failed", status=status)
            raise ImporterError(f"Login failed with HTTP {status}")

        self.token = token
        self.log.info("Obtained token")
        return token

    async def insertEvent(self, event: EventData) -> bool:
        """
        Post one event.

        Returns True once the server reports success. A 401 refreshes the
        token and retries; at most MAX_ATTEMPTS posts are made.
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            if self.token is None:
                await self.login()

            try:
                status, data = await self._post('insertEvent', {'event': event.toDict()}, token=self.token)
            except aiohttp.ClientError as e:
                self.log.warning(f"Request failed: {e}", uuid=event.uuid, attempt=attempt)
                continue

            if status == 401:
                self.log.info("Unauthorized, refreshing token", uuid=event.uuid, attempt=attempt)
                self.token = None
                continue

            success = status == 200 and bool(data.get('status', {}).get('success'))
            if success:
                self.log.debug("Added event", uuid=event.uuid)
                return True

            message = data.get('status', {}).get('message', '')
            self.log.warning("Server refused event", uuid=event.uuid, status=status, reason=message)
            return False

        self.log.error("Giving up on event", uuid=event.uuid, attempts=MAX_ATTEMPTS)
        return False


async def uploadXmlFiles(client: EventsHubClient, paths: List[str]) -> ImportSummary:
    """Parse each XML file and post its events in document order"""
    log = getLogger()
    summary = ImportSummary()

    for path in paths:
        log.info(f"Reading data from {path}")
        try:
            events, skipped = await asyncio.to_thread(parseXmlEvents, path)
        except (OSError, SyntaxError) as e:
            # ElementTree.ParseError is a SyntaxError
            log.error(f"Cannot parse {path}: {e}")
            summary.failed += 1
            continue

        summary.parsed += len(events)
        summary.skipped += skipped
        for event in events:
            if await client.insertEvent(event):
                summary.inserted += 1
            else:
                summary.failed += 1

    log.info("Import finished", parsed=summary.parsed, inserted=summary.inserted,
             skipped=summary.skipped, failed=summary.failed)
    return summary


def parseArgs(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Import XML calendar exports into eventshub')
    parser.add_argument('--config', default='./config.json', help='Importer JSON config (default: ./config.json)')
    parser.add_argument('--insecure', action='store_true', help='Use plain HTTP instead of HTTPS')
    parser.add_argument('--log-level', default='INFO', type=str.upper,
                        choices=('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'))
    return parser.parse_args(argv)


async def runImport(config: ImporterConfig, username: str, password: str,
                    caCertificate: Optional[str], secure: bool) -> ImportSummary:
    async with EventsHubClient.forConfig(config, username, password, caCertificate, secure) as client:
        await client.login()
        return await uploadXmlFiles(client, config.sourceFilesPaths)


def main(argv: Optional[List[str]] = None) -> int:
    args = parseArgs(argv)
    load_dotenv(find_dotenv(usecwd=True), override=False)
    configureLogging(level=args.log_level)
    log = getLogger()

    username = os.environ.get('EVENTSHUB_ADMIN_USERNAME', '')
    password = os.environ.get('EVENTSHUB_ADMIN_PASSWORD', '')
    caCertificate = os.environ.get('EVENTSHUB_CA_CERTIFICATE') or None
    if not username or not password:
        log.critical("Missing EVENTSHUB_ADMIN_USERNAME or EVENTSHUB_ADMIN_PASSWORD")
        return 1
    if not args.insecure and caCertificate and not Path(caCertificate).is_file():
        log.critical(f"CA certificate not found: {caCertificate}")
        return 1

    try:
        config = loadImporterConfig(args.config)
        summary = asyncio.run(runImport(config, username, password, caCertificate, not args.insecure))
    except ImporterError as e:
        log.critical(str(e))
        return 1
    except aiohttp.ClientError as e:
        log.critical(f"Cannot reach eventshub: {e}")
        return 1

    return 0 if summary.ok else 2


if __name__ == '__main__':
    sys.exit(main())
