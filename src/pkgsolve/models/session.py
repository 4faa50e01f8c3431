from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

import httpx

from pkgsolve.__version__ import __version__
from pkgsolve.termui import logger

MAX_RETRIES = 4


@lru_cache(maxsize=None)
def _get_transport(verify: bool = True) -> httpx.BaseTransport:
    return httpx.HTTPTransport(verify=verify, trust_env=True, retries=MAX_RETRIES)


class PkgsolveSession(httpx.Client):
    """The HTTP client used to talk to package indexes."""

    def __init__(self, *, verify_ssl: bool = True, **kwargs: Any) -> None:
        if "transport" not in kwargs:
            verify = verify_ssl and not os.getenv("PKGSOLVE_INSECURE")
            kwargs["transport"] = _get_transport(verify=bool(verify))
        kwargs.update(follow_redirects=True)
        super().__init__(**kwargs)

        self.headers["User-Agent"] = self._make_user_agent()
        self.event_hooks["response"].append(self.on_response)

    def _make_user_agent(self) -> str:
        import platform

        return f"pkgsolve/{__version__} {platform.python_implementation()}/{platform.python_version()} {platform.system()}/{platform.release()}"

    def on_response(self, response: httpx.Response) -> None:
        logger.debug("%s %s: %s", response.request.method, response.url, response.status_code)
