import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse

from ..others.catalog import (
    PLAYLIST_MEDIA_TYPE,
    SEGMENT_MEDIA_TYPE,
    Catalog,
    canonical_segment_id,
)
from ..others.classifier import RequestKind, classify_request
from ..others.errors import (
    AccessError,
    ChallengeRequired,
    PaymentPageRequired,
    SegmentNotFound,
    VerificationFailed,
    VerifierUnavailable,
)
from ..others.gate import AccessGate, GateRequest
from ..others.pages import render_paywall
from ..others.types import PaymentRejected, build_challenge

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "5"

router = APIRouter(
    tags=["segments"],
)


@router.get("/catalog-index")
@router.get("/video/playlist.m3u8")
async def playlist(request: Request) -> Response:
    """Playlist with segment links rewritten to the paid route. Always free."""
    catalog: Catalog = request.app.state.catalog
    text = catalog.playlist()
    if text is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Playlist not found",
        )
    return Response(content=text, media_type=PLAYLIST_MEDIA_TYPE)


@router.get("/unit/{segment_id}")
@router.get("/video/segment/{segment_id}")
async def segment(segment_id: str, request: Request) -> Response:
    catalog: Catalog = request.app.state.catalog
    gate: AccessGate = request.app.state.gate
    segment_id = canonical_segment_id(segment_id)

    try:
        path = catalog.require_segment(segment_id)
        grant = await gate.authorize(
            segment_id,
            request.state.paid_segments,
            GateRequest.from_request(request, request.state.session_id),
        )
    except AccessError as exc:
        return _access_error_response(exc, request)

    logger.info(f"Serving segment {segment_id} ({grant.via})")
    headers = {"Cache-Control": "no-cache"}
    if grant.receipt is not None:
        headers["X-PAYMENT-RESPONSE"] = grant.receipt.to_header()
    return FileResponse(path, media_type=SEGMENT_MEDIA_TYPE, headers=headers)


def _dump_requirement(requirement: Any) -> Dict[str, Any]:
    if hasattr(requirement, "model_dump"):
        return requirement.model_dump(by_alias=True, mode="json")
    return dict(requirement)


def _paywall_response(error: str, requirements: list, request: Request) -> HTMLResponse:
    html_content = render_paywall(error, requirements, request.app.state.paywall_config)
    return HTMLResponse(
        content=html_content,
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
    )


def _access_error_response(exc: AccessError, request: Request) -> Response:
    match exc:
        case SegmentNotFound():
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"detail": "Segment not found"},
            )
        case ChallengeRequired():
            return JSONResponse(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                content=build_challenge(exc.segment_id).model_dump(),
            )
        case PaymentPageRequired():
            return _paywall_response(
                "No X-PAYMENT header provided", exc.requirements, request
            )
        case VerificationFailed():
            kind = classify_request(request.headers.get("accept"))
            if kind is RequestKind.INTERACTIVE and exc.requirements:
                return _paywall_response(exc.reason, exc.requirements, request)
            body = PaymentRejected(
                error=exc.reason,
                accepts=[_dump_requirement(r) for r in exc.requirements],
            )
            return JSONResponse(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                content=body.model_dump(),
            )
        case VerifierUnavailable():
            logger.warning(f"Payment verifier unavailable: {exc.reason}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": exc.reason},
                headers={"Retry-After": RETRY_AFTER_SECONDS},
            )
        case _:
            raise exc
