"""
Request Gateway - the HTTP surface of the event store.

Routes (all JSON, every payload tagged with `__type__`):
    GET       /api/v1/version                   token   VersionResp
    POST      /api/v1/login                     -       TokenMsg
    POST      /api/v1/insertEvent               token   AddEventResp
    GET/POST  /api/v1/getEventCheckSum          token   GetEventCheckSumResp
    POST      /api/v1/getEventsWithinTimeRange  token   GetEventsResp
    GET       /api/v1/status                    token   GetStatusResp
    POST      /api/v1/ki11s3rv3rn0w             secret  KillResp

Error mapping (middleware):
- AuthenticationError → 401, ResponseStatus envelope
- ValidationError → 400, the endpoint's own envelope with success=false
- StorageError / anything else → 500, the endpoint's envelope; logged with
  traceback, other in-flight requests are unaffected

Repository and bcrypt work is blocking; it runs on worker threads via
asyncio.to_thread so the event loop keeps accepting requests.
"""

import asyncio
import hmac
import uuid
from typing import TYPE_CHECKING, Any, Callable, Dict

import orjson
from aiohttp import web

from eventshub.core.contracts import (
    ValidationError, SERVER_VERSION,
    parseCredentials, parseEvent, parseUuid, parseTimeRange, parseKillPayload,
    responseStatus, addEventResp, checkSumResp, eventsResp, statusResp, killResp,
    versionResp, tokenMsg
)
from eventshub.core.events import StatusRecord
from eventshub.core.repository import StorageError
from eventshub.server.auth import AuthenticationError, extractToken
from sdk.logging import getLogger, setRequestContext, clearRequestContext

if TYPE_CHECKING:
    from eventshub.server.lifecycle import ServerContext

API_PREFIX = '/api/v1'
REQUEST_ID_HEADER = 'X-Request-ID'
KILL_PATH = f'{API_PREFIX}/ki11s3rv3rn0w'

KILL_ACCEPTED_MESSAGE = "Server will shutdown in {delay:g} seconds!"
KILL_REJECTED_MESSAGE = "Deadly package error."


def jsonResponse(payload: Dict[str, Any], status: int = 200) -> web.Response:
    """JSON response serialized with orjson"""
    return web.Response(
        body=orjson.dumps(payload),
        status=status,
        content_type='application/json'
    )


async def readJson(request: web.Request) -> Any:
    """Request body as JSON; empty or invalid bodies are validation errors"""
    raw = await request.read()
    if not raw:
        raise ValidationError("Missing body")
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e


class RequestGateway:
    """
    Wires the repository and token authority to HTTP routes.

    Holds no per-request state; everything shared lives in the ServerContext.
    """

    def __init__(self, context: 'ServerContext'):
        self.context = context
        self.log = getLogger()

        self.app = web.Application(middlewares=[self.requestContextMiddleware, self.errorMiddleware])
        self._failureEnvelopes: Dict[str, Callable[[str], Dict[str, Any]]] = {}
        self._setupRoutes()

    def _setupRoutes(self):
        """Setup aiohttp routes with the failure envelope of each"""
        self._route('GET', '/version', self.handleVersion, lambda m: responseStatus(False, m))
        self._route('POST', '/login', self.handleLogin, lambda m: responseStatus(False, m))
        self._route('POST', '/insertEvent', self.handleInsertEvent, lambda m: addEventResp(False, m))
        self._route('GET', '/getEventCheckSum', self.handleEventCheckSum, lambda m: checkSumResp("", False, m))
        self._route('POST', '/getEventCheckSum', self.handleEventCheckSum, lambda m: checkSumResp("", False, m))
        self._route('POST', '/getEventsWithinTimeRange', self.handleEventsWithinTimeRange,
                    lambda m: eventsResp([], False, m))
        self._route('GET', '/status', self.handleStatus,
                    lambda m: statusResp(StatusRecord(success=False, message=m)))
        self._route('POST', '/ki11s3rv3rn0w', self.handleKill, lambda m: killResp(False, m))

    def _route(self, method: str, path: str, handler, failureEnvelope: Callable[[str], Dict[str, Any]]):
        fullPath = API_PREFIX + path
        self.app.router.add_route(method, fullPath, handler)
        self._failureEnvelopes[fullPath] = failureEnvelope

    def _failure(self, request: web.Request, message: str, status: int) -> web.Response:
        envelope = self._failureEnvelopes.get(request.path, lambda m: responseStatus(False, m))
        return jsonResponse(envelope(message), status=status)

    # =========================================================================
    # Middlewares
    # =========================================================================

    @web.middleware
    async def requestContextMiddleware(self, request: web.Request, handler):
        """Stamp a request id on every log line of this request and echo it back"""
        requestId = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        setRequestContext(requestId, request.remote)
        try:
            response = await handler(request)
            response.headers[REQUEST_ID_HEADER] = requestId
            return response
        except web.HTTPException as e:
            # Router 404/405 and other raised responses
            e.headers[REQUEST_ID_HEADER] = requestId
            raise
        finally:
            clearRequestContext()

    @web.middleware
    async def errorMiddleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except AuthenticationError as e:
            self.log.warning(f"Unauthorized request: {e}", path=request.path, reason=type(e).__name__)
            return jsonResponse(responseStatus(False, str(e)), status=401)
        except ValidationError as e:
            self.log.warning(f"Rejected request: {e}", path=request.path)
            return self._failure(request, str(e), 400)
        except StorageError as e:
            # Already logged where it was detected
            return self._failure(request, f"Storage failure: {e}", 500)
        except Exception as e:
            self.log.error(f"Unhandled error: {e}", path=request.path, exc_info=True)
            return self._failure(request, "Internal server error", 500)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _authorize(self, request: web.Request) -> Dict[str, Any]:
        """Claims of the presented token; raises AuthenticationError"""
        return self.context.authority.verify(extractToken(request.headers))

    def _epochs(self, start, end, exact: bool = False) -> tuple:
        """
        Epoch seconds of start and end.

        exact=True is for moments about to be stored: they must read back
        unchanged, otherwise the stored row would never match a re-submit.
        """
        codec = self.context.codec
        encode = codec.encodeExact if exact else codec.encode
        try:
            return encode(start), encode(end)
        except (ValueError, OverflowError) as e:
            raise ValidationError(f"Invalid moment: {e}") from e

    # =========================================================================
    # HTTP Handlers
    # =========================================================================

    async def handleVersion(self, request: web.Request) -> web.Response:
        self._authorize(request)
        return jsonResponse(versionResp(SERVER_VERSION))

    async def handleLogin(self, request: web.Request) -> web.Response:
        """Exchange username/password for a bearer token"""
        username, password = parseCredentials(await readJson(request))

        authenticated = await asyncio.to_thread(self.context.repository.authenticate, username, password)
        if not authenticated:
            self.log.warning("Login failed", username=username)
            return jsonResponse(responseStatus(False, "Invalid credentials"), status=401)

        token = self.context.authority.issue(username)
        return jsonResponse(tokenMsg(token))

    async def handleInsertEvent(self, request: web.Request) -> web.Response:
        """
        Upsert one event.

        Body: {"event": EventData}. Re-submitting unchanged content is a no-op
        that still reports success.
        """
        self._authorize(request)
        data = await readJson(request)
        if not isinstance(data, dict) or 'event' not in data:
            raise ValidationError("'event' is required")

        event = parseEvent(data['event'])
        self._epochs(event.start, event.end, exact=True)

        # Storage failures raise and are mapped to 500 by errorMiddleware
        await asyncio.to_thread(self.context.repository.insertOrUpdate, event)
        return jsonResponse(addEventResp(True))

    async def handleEventCheckSum(self, request: web.Request) -> web.Response:
        """Content hash of the stored event with the given uuid; 404 when absent"""
        self._authorize(request)
        if request.method == 'GET' and not request.can_read_body:
            eventUuid = parseUuid(dict(request.query))
        else:
            eventUuid = parseUuid(await readJson(request))

        event = await asyncio.to_thread(self.context.repository.getByUuid, eventUuid)
        if event is None:
            return jsonResponse(checkSumResp("", False, f"Event {eventUuid} not found"), status=404)

        return jsonResponse(checkSumResp(event.contentHash()))

    async def handleEventsWithinTimeRange(self, request: web.Request) -> web.Response:
        """Events overlapping [start, end], boundaries inclusive"""
        self._authorize(request)
        start, end = parseTimeRange(await readJson(request))
        startEpoch, endEpoch = self._epochs(start, end)

        events = await asyncio.to_thread(self.context.repository.rangeQuery, startEpoch, endEpoch)
        self.log.debug("Range query", start=str(start), end=str(end), count=len(events))
        return jsonResponse(eventsResp(events))

    async def handleStatus(self, request: web.Request) -> web.Response:
        self._authorize(request)
        record = await asyncio.to_thread(self.context.repository.getStatus)
        return jsonResponse(statusResp(record))

    async def handleKill(self, request: web.Request) -> web.Response:
        """
        Remote shutdown, gated by the kill secret rather than a token.

        The shutdown is scheduled after a short delay so this response is
        flushed before the listener closes.
        """
        payload = parseKillPayload(await readJson(request))

        expected = self.context.config.killSecret
        if not hmac.compare_digest(payload.encode('utf-8'), expected.encode('utf-8')):
            self.log.error("Kill request with wrong payload")
            return jsonResponse(killResp(False, KILL_REJECTED_MESSAGE))

        delay = self.context.config.killDelaySeconds
        self.log.critical("Received external kill signal", delaySeconds=delay)
        self.context.shutdown.triggerLater('kill', delay)
        return jsonResponse(killResp(True, KILL_ACCEPTED_MESSAGE.format(delay=delay)))
