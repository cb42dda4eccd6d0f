"""
Appointment scheduler client.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger()


class SchedulerInterface(ABC):
    @abstractmethod
    async def get_availability(self) -> str:
        """Return a user-facing list of open time slots."""
        pass

    @abstractmethod
    async def schedule_appointment(self, time: str) -> str:
        """Book an appointment and return a user-facing confirmation."""
        pass


class DentistScheduler(SchedulerInterface):
    """
    Talks to the clinic's scheduler service.

    Endpoints:
        GET  {base}/availability  -> ["8am", "9am", ...]
        POST {base}/schedule      {"time": "..."}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url:
            raise ValueError("Scheduler base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        if self._http_client is not None:
            response = await self._http_client.request(method, url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def get_availability(self) -> str:
        response = await self._request("GET", "availability")
        times = response.json()
        logger.info("scheduler_availability", slots=len(times))

        text = "Current time slots available: "
        for slot in times:
            text += f"\n{slot}"
        return text

    async def schedule_appointment(self, time: str) -> str:
        await self._request("POST", "schedule", json={"time": time})
        logger.info("scheduler_booked", time=time)
        return f"An appointment is set for {time}."
