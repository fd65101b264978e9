# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""One-shot local listener for the OAuth redirect.

The server is bound only for the duration of a single authorization
attempt.  It serves requests on the calling thread until the redirect
arrives or the deadline passes, so no background thread outlives it.
"""

import logging
import time
from collections.abc import Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from werkzeug.wrappers.response import StartResponse

from werkzeug.serving import BaseWSGIServer, make_server
from werkzeug.wrappers import Request, Response


logger = logging.getLogger(__name__)

_SUCCESS_PAGE = "Authorization code received. You can close this window."
_FAILURE_PAGE = "Authorization code not found."


class CallbackServerError(Exception):
    """Raised when the redirect listener cannot be started."""


class AuthorizationCallbackServer:
    """Local HTTP listener that captures the OAuth redirect parameters.

    Requests to ``path`` are captured; anything else (e.g. the browser's
    favicon request) gets a 404 and waiting continues.

    Usage::

        with AuthorizationCallbackServer("localhost", 4001) as server:
            webbrowser.open(auth_url)
            params = server.wait_for_redirect(timeout=300)

    Attributes:
        host: Bind host.
        port: Bind port.
        path: Redirect path to capture.
    """

    def __init__(self, host: str, port: int, path: str = "/") -> None:
        self.host = host
        self.port = port
        self.path = path or "/"
        self._server: BaseWSGIServer | None = None
        self._params: dict[str, str] | None = None

    def __enter__(self) -> "AuthorizationCallbackServer":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def start(self) -> None:
        """Bind the listener.

        Raises:
            CallbackServerError: If the port cannot be bound.
        """
        try:
            self._server = make_server(self.host, self.port, self._wsgi_app)
        except (OSError, SystemExit) as e:
            # werkzeug reports bind failures with sys.exit(1).
            raise CallbackServerError(
                f"Cannot listen on {self.host}:{self.port} for the "
                f"authorization redirect"
            ) from e
        logger.info(
            "Listening for authorization redirect on http://%s:%d%s",
            self.host,
            self.port,
            self.path,
        )

    def stop(self) -> None:
        """Close the listener socket."""
        if self._server is not None:
            self._server.server_close()
            self._server = None

    def wait_for_redirect(self, timeout: float) -> dict[str, str] | None:
        """Serve requests until the redirect arrives.

        Args:
            timeout: Seconds to wait in total.

        Returns:
            The redirect's query parameters, or None on timeout.

        Raises:
            CallbackServerError: If the listener is not started.
        """
        if self._server is None:
            raise CallbackServerError("Redirect listener is not started")
        deadline = time.monotonic() + timeout
        while self._params is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "No authorization redirect within %.0fs", timeout
                )
                return None
            self._server.timeout = remaining
            self._server.handle_request()
        return self._params

    def _wsgi_app(
        self,
        environ: dict[str, Any],
        start_response: "StartResponse",
    ) -> Iterable[bytes]:
        """WSGI application entry point."""
        request = Request(environ)
        response = self._dispatch(request)
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Response:
        if request.path != self.path or self._params is not None:
            return Response("Not Found", status=404)

        self._params = request.args.to_dict()
        if "code" in self._params:
            logger.debug("Authorization redirect received")
            return Response(_SUCCESS_PAGE, mimetype="text/plain")

        logger.warning(
            "Authorization redirect without code: %s",
            self._params.get("error_description")
            or self._params.get("error")
            or "no parameters",
        )
        return Response(_FAILURE_PAGE, status=400, mimetype="text/plain")
