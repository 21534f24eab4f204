import asyncio
import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.api.deps import get_current_user, get_session, resolve_user_from_token
from threadfolio.api.schemas.appointment import AppointmentCountsResponse
from threadfolio.core.db import async_session_maker
from threadfolio.models.appointment import AppointmentCreate, AppointmentPublic, AppointmentUpdate
from threadfolio.models.user import User
from threadfolio.services.appointment_service import (
    cancel_appointment,
    create_appointment,
    get_appointment,
    get_appointment_counts,
    get_appointments_by_time_range,
    update_appointment,
)
from threadfolio.services.cache import counts_cache
from threadfolio.services.exceptions import BookingError
from threadfolio.services.realtime import EVENT_CREATED, EVENT_UPDATED, broadcaster
from threadfolio.services.shop_service import get_owned_shop

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])

# WebSocket close code for policy violations (bad token, shop not owned)
_WS_POLICY_VIOLATION = 1008


async def _after_commit(
    session: AsyncSession, background_tasks: BackgroundTasks, event: str, appointment: AppointmentPublic
) -> None:
    # Cached counts and stream subscribers must only ever see committed rows
    await session.commit()
    await counts_cache.invalidate_shop(appointment.shop_id)
    background_tasks.add_task(broadcaster.publish, appointment.shop_id, event, appointment)


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: AppointmentCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    appointment = await create_appointment(session, current_user, body)
    await _after_commit(session, background_tasks, EVENT_CREATED, appointment)
    return appointment


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(
    shop_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    include_cancelled: bool = Query(False),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentPublic]:
    return await get_appointments_by_time_range(
        session, current_user, shop_id, start_date, end_date, include_cancelled=include_cancelled
    )


@router.get("/counts", response_model=AppointmentCountsResponse)
async def appointment_counts(
    shop_id: str = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentCountsResponse:
    counts = await get_appointment_counts(session, current_user, shop_id, start_date, end_date)
    return AppointmentCountsResponse(
        shop_id=shop_id,
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        counts={d.isoformat(): n for d, n in counts.items()},
    )


@router.websocket("/stream")
async def appointment_stream(websocket: WebSocket, shop_id: str, token: str | None = None) -> None:
    """Push created/updated appointments of one shop to the connected session."""
    async with async_session_maker() as session:
        try:
            user = await resolve_user_from_token(session, token)
            await get_owned_shop(session, user, shop_id)
            await session.commit()
        except BookingError as exc:
            await session.rollback()
            await websocket.close(code=_WS_POLICY_VIOLATION, reason=exc.message)
            return

    await websocket.accept()
    async with broadcaster.subscribe(shop_id) as queue:
        receiver = asyncio.create_task(websocket.receive_text())
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver in done:
                    getter.cancel()
                    # Clients only listen; any inbound frame or a disconnect ends the stream
                    receiver.result()
                    break
                await websocket.send_json(getter.result())
        except WebSocketDisconnect:
            logger.debug("Stream client for shop %s disconnected", shop_id)
        finally:
            receiver.cancel()


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def read_appointment(
    appointment_id: str,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    return await get_appointment(session, current_user, appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentPublic)
async def reschedule_appointment(
    appointment_id: str,
    body: AppointmentUpdate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    appointment = await update_appointment(session, current_user, appointment_id, body)
    await _after_commit(session, background_tasks, EVENT_UPDATED, appointment)
    return appointment


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_my_appointment(
    appointment_id: str,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    appointment = await cancel_appointment(session, current_user, appointment_id)
    await _after_commit(session, background_tasks, EVENT_UPDATED, appointment)
    return appointment
