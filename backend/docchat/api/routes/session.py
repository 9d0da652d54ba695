from fastapi import APIRouter, Depends, HTTPException

from docchat.api.deps import widget_dependency
from docchat.services.widget import ChatWidget

router = APIRouter(prefix="/session", tags=["session"])


@router.get("")
async def get_session(widget: ChatWidget = Depends(widget_dependency)):
    """Current session state for a local view."""
    return widget.session.snapshot()


@router.post("/acknowledge-error")
async def acknowledge_error(widget: ChatWidget = Depends(widget_dependency)):
    """Return from Error to Initializing (the "Try again" action)."""
    if not widget.session.acknowledge_error():
        raise HTTPException(
            status_code=409,
            detail=f"Session is {widget.session.status.value}, not in error.",
        )
    return widget.session.snapshot()
