from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from threadfolio.api.deps import get_current_user, get_session
from threadfolio.api.schemas.appointment import AvailableSlotsResponse, SlotInfo
from threadfolio.models.user import User
from threadfolio.services.shop_service import get_owned_shop
from threadfolio.services.slot_service import get_available_slots_for_date

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    shop_id: str = Query(...),
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AvailableSlotsResponse:
    """Return the day's slots within working hours. Each slot has start_time, end_time, and available (bool)."""
    shop = await get_owned_shop(session, current_user, shop_id)
    slots_with_availability = await get_available_slots_for_date(session, shop.id, date_param)
    slot_infos = [
        SlotInfo(start_time=start, end_time=end, available=avail)
        for start, end, avail in slots_with_availability
    ]
    return AvailableSlotsResponse(
        shop_id=shop.id,
        date=date_param.isoformat(),
        slots=slot_infos,
    )
