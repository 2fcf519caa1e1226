from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

import click
import requests
from requests import Response

from .config import APISettings


class APIClient:
    """Thin wrapper over requests to talk to the journal API."""

    def __init__(self, settings: APISettings, timeout: int = 30) -> None:
        self.settings = settings
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json", "X-User-Id": self.settings.user_id}
        if self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        return headers

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(
        self,
        path: str,
        *,
        json_body: Optional[Any] = None,
        files: Optional[Iterable] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return self._request("POST", path, params=params, json=json_body, files=files)

    def patch(self, path: str, *, json_body: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("PATCH", path, json=json_body)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.settings.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise click.ClickException(f"{method} {url} failed: {exc}") from exc
        return self._handle_response(response)

    def _handle_response(self, response: Response) -> Any:
        if not response.ok:
            self._raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise click.ClickException("Response was not valid JSON") from exc

    def _raise_for_status(self, response: Response) -> None:
        try:
            payload = response.json()
            message = payload.get("detail") or payload
        except ValueError:
            message = response.text
        raise click.ClickException(
            f"Request failed with status {response.status_code}: {message}"
        )
