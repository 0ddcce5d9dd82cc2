"""
triggers.py

Responsibility: notify downstream systems after an image was pushed.

This module is the only place that sends HTTP requests. A trigger is a plain
GET; anything but 200 stops the chain.
"""

from __future__ import annotations

import logging

import requests

from gotodocker.errors import GoToDockerError

logger = logging.getLogger(__name__)

HTTP_PREFIXES = ("http://", "https://")


class TriggerError(GoToDockerError, RuntimeError):
    def __init__(self, uri: str, status_code: int | None, body: str) -> None:
        self.uri = uri
        self.status_code = status_code
        self.body = body
        super().__init__(f"uri: {uri}\nstatus code: {status_code}, body:\n{body}")


def http_triggers(uris: list[str]) -> list[str]:
    """
    Keep only the URIs this client can fire, in their original order.
    """
    kept = []
    for uri in uris:
        if uri.lower().startswith(HTTP_PREFIXES):
            kept.append(uri)
        else:
            logger.debug("ignoring unsupported trigger %s", uri)
    return kept


class TriggerClient:
    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session or requests.Session()

    def fire(self, uri: str) -> str:
        """
        GET `uri` and return the response body; raise TriggerError unless it is a 200.
        """
        try:
            r = self._session.get(uri)
        except requests.RequestException as e:
            raise TriggerError(uri, None, str(e)) from e
        if r.status_code != 200:
            raise TriggerError(uri, r.status_code, r.text)
        logger.info("trigger: %s", uri)
        logger.debug("body:\n%s", r.text)
        return r.text

    def fire_all(self, uris: list[str]) -> None:
        for uri in http_triggers(uris):
            self.fire(uri)
