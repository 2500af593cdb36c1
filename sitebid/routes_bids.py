"""
sitebid/routes_bids.py

Bid submission, reads and status changes (withdraw / reject / accept).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from sitebid.auth_context import CallerContext
from sitebid.dependencies import get_service, require_caller
from sitebid.models import Bid
from sitebid.schemas import BidCreateRequest, BidListResponse, BidStatusRequest
from sitebid.service import MarketplaceService


router = APIRouter(
    prefix="/api/bids",
    tags=["bids"],
)


@router.get("", response_model=BidListResponse)
def list_bids(
    project_id: Optional[str] = Query(None, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> BidListResponse:
    bids = service.list_bids(caller, project_id=project_id)
    return BidListResponse(items=bids, total=len(bids))


@router.get("/{bid_id}", response_model=Bid)
def get_bid(
    bid_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Bid:
    return service.get_bid(caller, bid_id)


@router.post("", response_model=Bid, status_code=201)
def submit_bid(
    request: BidCreateRequest,
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Bid:
    """
    Submit a bid as the calling contractor.

    Raises:
        AuthError(RoleNotPermitted) -> 403
        AuthError(ResourceNotOpen) -> 400
        AuthError/WorkflowError(DuplicateBid) -> 409
        NotFound -> 404
    """
    return service.submit_bid(caller, request.project_id, request.dict())


@router.put("/{bid_id}/status", response_model=Bid)
def set_bid_status(
    request: BidStatusRequest,
    bid_id: str = Path(..., min_length=1, max_length=100),
    caller: CallerContext = Depends(require_caller),
    service: MarketplaceService = Depends(get_service),
) -> Bid:
    """
    Withdraw (bidder), or accept/reject (project owner or project manager).
    Accepting commits the project and rejects every other pending bid.
    """
    return service.set_bid_status(caller, bid_id, request.status)
