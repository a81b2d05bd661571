from fastapi import APIRouter, Depends

from band_bridge.core.session import TelemetrySession
from band_bridge.routers.session import get_session
from band_bridge.schemas.caregiver import CaregiverContact

router = APIRouter(prefix="/caregiver", tags=["caregiver"])


@router.get("", response_model=CaregiverContact)
async def load_caregiver(session: TelemetrySession = Depends(get_session)) -> CaregiverContact:
    """Saved caregiver details for pre-filling the form (empty strings if none)."""
    return session.load_caregiver()


@router.put("")
async def save_caregiver(
    contact: CaregiverContact, session: TelemetrySession = Depends(get_session)
) -> dict:
    saved = session.save_caregiver(contact)
    return {"caregiver": saved.model_dump(), "save_status": session.display.save_status}
