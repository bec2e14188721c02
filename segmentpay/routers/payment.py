from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from ..others.catalog import Catalog, canonical_segment_id
from ..others.config import Settings
from ..others.pages import render_confirm_page, render_pay_page
from ..others.types import PaidStatus

router = APIRouter(
    tags=["payment"],
)


@router.get("/pay/{segment_id}", response_class=HTMLResponse)
async def pay_page(segment_id: str, request: Request) -> Response:
    """Guided payment page; skips straight to confirmation once paid."""
    settings: Settings = request.app.state.settings
    catalog: Catalog = request.app.state.catalog
    segment_id = canonical_segment_id(segment_id)

    if not catalog.has_segment(segment_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Segment not found",
        )

    # nothing to pay for in demo mode
    if settings.demo_mode or request.state.paid_segments.contains(segment_id):
        return RedirectResponse(
            url=f"/confirm/{segment_id}", status_code=status.HTTP_302_FOUND
        )

    return HTMLResponse(render_pay_page(segment_id, settings.price_per_segment))


@router.get("/confirm/{segment_id}", response_class=HTMLResponse)
@router.get("/payment-success/{segment_id}", response_class=HTMLResponse)
async def confirm_page(segment_id: str) -> HTMLResponse:
    return HTMLResponse(render_confirm_page(canonical_segment_id(segment_id)))


@router.get("/status/{segment_id}", response_model=PaidStatus)
@router.get("/api/check-paid/{segment_id}", response_model=PaidStatus)
async def paid_status(segment_id: str, request: Request) -> PaidStatus:
    """Cheap membership read used by the pay page's polling loop."""
    segment_id = canonical_segment_id(segment_id)
    return PaidStatus(
        segmentId=segment_id,
        isPaid=request.state.paid_segments.contains(segment_id),
    )
