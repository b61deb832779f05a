"""
The JSON-RPC server of the wallet daemon.

Requests are HTTP POSTs of a single JSON-RPC call object, or an array of them. Every call is
resolved by `methods.lazy_apply_handler`, which serves it locally or passes it through to the
consensus node, and each call is given at most the configured request timeout to complete.
"""

from __future__ import annotations
import asyncio
from base64 import b64decode
import binascii
from http import HTTPStatus
import json
from types import NoneType
from typing import Any, Awaitable, Callable, cast
from typing_extensions import TypedDict

from aiohttp import web
# NOTE(typing) `cors_middleware` is not explicitly exported, so mypy strict fails.
from aiohttp_middlewares import cors_middleware # type: ignore

from .loader import WalletLoader
from .logs import logs
from .methods import lazy_apply_handler
from .rpc_error import convert_error, ErrorDict, RPCError, RPCErrorCode
from .simple_config import DEFAULT_REQUEST_TIMEOUT
from .util import constant_time_compare


HandlerType = Callable[[web.Request], Awaitable[web.StreamResponse]]

logger = logs.get_logger("rpc-server")


# The call id type is limited to the basic types.
RequestIdType = int | str | None
RequestParametersType = list[Any] | dict[str, Any]

class ResponseDict(TypedDict):
    result: Any
    error: ErrorDict | None
    id: RequestIdType


class RPCServer:
    is_running = False

    def __init__(self, loader: WalletLoader, host: str="localhost", port: int=9110,
            username: str|None=None, password: str|None=None,
            request_timeout: float=DEFAULT_REQUEST_TIMEOUT) -> None:
        self.loader = loader
        self.request_timeout = request_timeout
        self._host = host
        self._port = port
        self._username = username
        self._password = password

        self._logger = logs.get_logger("rpc-server")
        self.startup_event = asyncio.Event()
        self.shutdown_event = asyncio.Event()

        self._runner: web.AppRunner | None = None
        self._web_application = web.Application(middlewares=[
            cors_middleware(origins=["http://localhost"],
                allow_methods=("POST",),
                allow_headers=("authorization",))
        ])
        self._web_application.on_startup.append(self._on_startup_async)
        self._web_application.on_shutdown.append(self._on_shutdown_async)

        self._web_application["server"] = self
        setup_web_application(self._web_application)

    async def _on_startup_async(self, _application: web.Application) -> None:
        self._logger.debug("starting...")

    async def _on_shutdown_async(self, _application: web.Application) -> None:
        self._logger.debug("cleaning up...")
        self.is_running = False
        self.shutdown_event.set()
        self._logger.debug("stopped")

    async def _start_async(self) -> None:
        self._runner = web.AppRunner(self._web_application, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port, reuse_address=True)
        await site.start()

    async def run_async(self) -> None:
        await self._start_async()
        self.is_running = True
        self._logger.info("JSON-RPC wallet API started on http://%s:%s", self._host, self._port)
        self.startup_event.set()
        await self.shutdown_event.wait()

    async def shutdown_async(self) -> None:
        assert self._runner is not None
        await self._runner.cleanup()


@web.middleware
async def authentication_middleware_async(request: web.Request, handler: HandlerType) \
        -> web.StreamResponse:
    """
    * Returns `Unauthorized` if there is no `"Authorization"` header.
    * Returns `Unauthorized` if the `"Authorization"` header is not a valid credential.
    """
    rpc_server = cast(RPCServer, request.app["server"])
    assert rpc_server is not None

    if rpc_server._password == '':
        # authentication is disabled
        return await handler(request)

    auth_string = request.headers.get('Authorization', None)
    if auth_string is None:
        raise web.HTTPUnauthorized(reason="Missing credentials")

    (authorization_type, _, authorization_key) = auth_string.partition(' ')
    if authorization_type != 'Basic':
        raise web.HTTPUnauthorized()

    encoded = authorization_key.encode('utf8')
    try:
        credentials = b64decode(encoded).decode('utf8')
    except (binascii.Error, UnicodeDecodeError):
        raise web.HTTPUnauthorized()

    (username, _, password) = credentials.partition(':')
    if rpc_server._username is None or rpc_server._password is None:
        raise web.HTTPUnauthorized()
    if not (constant_time_compare(username, rpc_server._username)
            and constant_time_compare(password, rpc_server._password)):
        raise web.HTTPUnauthorized()

    return await handler(request)


def setup_web_application(application: web.Application) -> None:
    application.middlewares.extend([
        web.normalize_path_middleware(append_slash=False, remove_slash=True),
        authentication_middleware_async ])

    application.router.add_routes([
        web.post("/", jsonrpc_handler_async),
    ])


def _error_response(status_class: type[web.HTTPError], request_id: RequestIdType, code: int,
        message: str) -> web.HTTPError:
    return status_class(headers={ "Content-Type": "application/json" },
        text=json.dumps(ResponseDict(id=request_id, result=None,
            error=ErrorDict(code=code, message=message))))


def _status_for_error(code: int) -> HTTPStatus:
    if code == RPCErrorCode.INVALID_REQUEST:
        return HTTPStatus.BAD_REQUEST
    if code == RPCErrorCode.METHOD_NOT_FOUND:
        return HTTPStatus.NOT_FOUND
    return HTTPStatus.INTERNAL_SERVER_ERROR


async def jsonrpc_handler_async(request: web.Request) -> web.Response:
    """
    The central handler for JSON-RPC requests.

    A single call that fails is returned with a status code for the error. The calls in a batch
    are always returned with an OK status, each carrying its own error if it failed.
    """
    try:
        body_data = await request.json()
    except json.JSONDecodeError:
        raise _error_response(web.HTTPInternalServerError, None, RPCErrorCode.PARSE_ERROR,
            "Parse error")

    rpc_server = cast(RPCServer, request.app["server"])
    if isinstance(body_data, dict):
        response_data = await execute_jsonrpc_call_async(rpc_server, body_data)
        status = HTTPStatus.OK
        if response_data["error"] is not None:
            status = _status_for_error(response_data["error"]["code"])
        return web.json_response(data=response_data, status=status)
    elif isinstance(body_data, list):
        if len(body_data) == 0:
            raise _error_response(web.HTTPBadRequest, None, RPCErrorCode.INVALID_REQUEST,
                "Empty batch")
        response_object: list[ResponseDict] = []
        for entry_data in body_data:
            response_object.append(await execute_jsonrpc_call_async(rpc_server, entry_data))
        return web.json_response(data=response_object)

    raise _error_response(web.HTTPInternalServerError, None, RPCErrorCode.PARSE_ERROR,
        "Top-level object parse error")


async def execute_jsonrpc_call_async(rpc_server: RPCServer, object_data: Any) -> ResponseDict:
    """
    Validate and serve one call. Every failure, including an invalid call object, is returned
    as the error of the response.
    """
    def error_response(request_id: RequestIdType, code: int, message: str) -> ResponseDict:
        return ResponseDict(id=request_id, result=None,
            error=ErrorDict(code=code, message=message))

    if not isinstance(object_data, dict):
        return error_response(None, RPCErrorCode.INVALID_REQUEST, "Invalid Request object")

    raw_request_id = object_data.get("id")
    if not isinstance(raw_request_id, int | str | NoneType):
        return error_response(None, RPCErrorCode.INVALID_REQUEST,
            "Id must be int, string or null")
    request_id = cast(RequestIdType, raw_request_id)

    method_name = object_data.get("method", ...)
    if method_name is ...:
        return error_response(request_id, RPCErrorCode.INVALID_REQUEST, "Missing method")
    elif type(method_name) is not str:
        return error_response(request_id, RPCErrorCode.INVALID_REQUEST,
            "Method must be a string")

    params = object_data.get("params")
    if params is None:
        params = []
    elif not isinstance(params, (dict, list)):
        return error_response(request_id, RPCErrorCode.INVALID_REQUEST,
            "Params must be an array or object")

    logger.debug("RPC method %s invoked", method_name)
    lazy_handler = lazy_apply_handler(rpc_server.loader, method_name,
        cast(RequestParametersType, params))
    error: RPCError | None
    try:
        result, error = await asyncio.wait_for(lazy_handler(), rpc_server.request_timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Canceled RPC method %s: deadline exceeded", method_name)
        result, error = None, convert_error(exc)

    if error is not None:
        return ResponseDict(id=request_id, result=None, error=error.to_dict())
    return ResponseDict(id=request_id, result=result, error=None)
