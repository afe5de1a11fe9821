"""
Calendar REST Client

Thin aiohttp wrapper around the calendar service's events endpoints. Obtaining
and refreshing the access token happens outside this tool.
"""

from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote
import asyncio
import json
import logging

import aiohttp

from .exceptions import CalendarApiError
from .events import CalendarEvent
from . import config

logger = logging.getLogger(__name__)


class CalendarApiClient:
    """
    Events API of one calendar.

    One ClientSession is created lazily and shared by every request.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        calendar_id: Optional[str] = None,
        base_url: Optional[str] = None,
        proxy: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Args:
            access_token: OAuth bearer token (env: CALENDAR_ACCESS_TOKEN, required)
            calendar_id: Calendar to operate on (env: CALENDAR_ID)
            base_url: REST endpoint (env: CALENDAR_API_URL)
            proxy: Optional proxy URL (env: HTTP_PROXY_URL)
            timeout: Seconds allowed per request (env: CALENDAR_TIMEOUT_SECONDS)
        """
        self.access_token = access_token or config.get_access_token()
        self.calendar_id = calendar_id or config.CALENDAR_ID
        self.base_url = (base_url or config.CALENDAR_API_URL).rstrip("/")
        self.proxy = proxy if proxy is not None else config.HTTP_PROXY_URL
        self.timeout = aiohttp.ClientTimeout(total=timeout or config.CALENDAR_TIMEOUT_SECONDS)
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            headers = {
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            }
            self.session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
        return self.session

    def _events_url(self, event_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/calendars/{quote(self.calendar_id, safe='')}/events"
        if event_id:
            url += f"/{quote(event_id, safe='')}"
        return url

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Send one request and decode its JSON body.

        Raises:
            CalendarApiError: on network errors, timeouts, an error status or
                a body that is not JSON
        """
        session = await self._get_session()
        if self.proxy:
            kwargs["proxy"] = self.proxy

        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise CalendarApiError(
                        f"{method} {url} failed: {response.status} - {text}",
                        status=response.status,
                        body=text,
                    )
                if response.status == 204:
                    return None
                try:
                    return await response.json(content_type=None)
                except json.JSONDecodeError as e:
                    raise CalendarApiError(
                        f"{method} {url} returned invalid JSON: {e}",
                        status=response.status,
                    )
        except asyncio.TimeoutError:
            raise CalendarApiError(f"Timed out on {method} {url}")
        except aiohttp.ClientError as e:
            raise CalendarApiError(f"Network error on {method} {url}: {e}")

    async def list_events(self, time_min: datetime, max_results: int) -> list[CalendarEvent]:
        """
        List one page of events starting at or after time_min.

        Recurring events are expanded into single occurrences and ordered by
        start time.
        """
        params = {
            "timeMin": time_min.astimezone().isoformat(),
            "maxResults": str(max_results),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        data = await self._request("GET", self._events_url(), params=params)
        items = (data or {}).get("items") or []
        logger.debug(f"Listed {len(items)} events from calendar {self.calendar_id}")
        return [CalendarEvent.from_api(item) for item in items]

    async def insert_event(self, event: CalendarEvent) -> CalendarEvent:
        data = await self._request("POST", self._events_url(), json=event.to_api())
        return CalendarEvent.from_api(data)

    async def patch_event(self, event_id: str, patch: CalendarEvent) -> CalendarEvent:
        data = await self._request("PATCH", self._events_url(event_id), json=patch.to_api())
        return CalendarEvent.from_api(data)

    async def delete_event(self, event_id: str) -> None:
        await self._request("DELETE", self._events_url(event_id))

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
