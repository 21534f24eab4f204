from __future__ import annotations

import logging
from datetime import date
from typing import Any, Protocol

import httpx

from threadfolio.models.appointment import AppointmentCreate, AppointmentPublic, AppointmentUpdate
from threadfolio.services.exceptions import ERRORS_BY_CODE, BookingError, NetworkError

logger = logging.getLogger(__name__)


class BookingApi(Protocol):
    """What the appointment store needs from the booking service."""

    async def get_appointments_by_time_range(
        self, shop_id: str, start_date: date, end_date: date
    ) -> list[AppointmentPublic]: ...

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentPublic: ...

    async def update_appointment(self, appointment_id: str, data: AppointmentUpdate) -> AppointmentPublic: ...

    async def cancel_appointment(self, appointment_id: str) -> AppointmentPublic: ...


def error_from_response(response: httpx.Response) -> BookingError:
    """Rebuild the typed error the server raised from its ``{"detail", "code"}`` body."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    code = body.get("code") if isinstance(body, dict) else None
    error_cls = ERRORS_BY_CODE.get(code or "")
    if error_cls is None:
        # FastAPI request validation errors carry a list of problems and no code
        if response.status_code == 422:
            error_cls = ERRORS_BY_CODE["validation_error"]
            detail = None
        elif response.status_code >= 500:
            error_cls = NetworkError
            detail = None
        else:
            error_cls = BookingError
    return error_cls(detail if isinstance(detail, str) else None)


class BookingApiClient:
    """Async HTTP client for the booking API (``/api/v1``)."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BookingApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("Unable to reach booking API (%s %s): %s", method, path, exc)
            raise NetworkError(cause=exc) from exc
        if response.is_error:
            error = error_from_response(response)
            logger.info("Booking API %s %s failed with %s: %s", method, path, response.status_code, error.code)
            raise error
        return response.json()

    async def get_appointments_by_time_range(
        self, shop_id: str, start_date: date, end_date: date
    ) -> list[AppointmentPublic]:
        data = await self._request(
            "GET",
            "/api/v1/appointments",
            params={
                "shop_id": shop_id,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return [AppointmentPublic.model_validate(item) for item in data]

    async def get_appointment_counts(self, shop_id: str, start_date: date, end_date: date) -> dict[date, int]:
        data = await self._request(
            "GET",
            "/api/v1/appointments/counts",
            params={
                "shop_id": shop_id,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return {date.fromisoformat(k): int(v) for k, v in data["counts"].items()}

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentPublic:
        payload = await self._request("POST", "/api/v1/appointments", json=data.model_dump(mode="json"))
        return AppointmentPublic.model_validate(payload)

    async def update_appointment(self, appointment_id: str, data: AppointmentUpdate) -> AppointmentPublic:
        payload = await self._request(
            "PATCH",
            f"/api/v1/appointments/{appointment_id}",
            json=data.model_dump(mode="json", exclude_unset=True),
        )
        return AppointmentPublic.model_validate(payload)

    async def cancel_appointment(self, appointment_id: str) -> AppointmentPublic:
        payload = await self._request("POST", f"/api/v1/appointments/{appointment_id}/cancel")
        return AppointmentPublic.model_validate(payload)
