"""Voucher API endpoints."""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user, require_admin
from app.core.config import settings
from app.core.database import get_db
from app.models.voucher import Voucher
from app.schemas.voucher import (
    ApplyVoucherRequest,
    PublicVoucherResponse,
    RedemptionRequest,
    RedemptionResponse,
    VoucherApplyResponse,
    VoucherCreate,
    VoucherRejectionResponse,
    VoucherResponse,
    VoucherUpdate,
)
from app.services.voucher_eligibility import OrderContext, RejectionReason
from app.services.voucher_service import Rejection, VoucherConflictError, VoucherService

router = APIRouter()


def _rejection_detail(rejection: Rejection) -> dict[str, str | None]:
    return VoucherRejectionResponse(
        reason=rejection.reason.value,
        message=rejection.message,
        cause=rejection.cause.value if rejection.cause else None,
    ).model_dump()


@router.post(
    "/",
    response_model=VoucherResponse,
    status_code=201,
    summary="Create voucher",
    responses={
        400: {"description": "Unknown product in scope"},
        401: {"description": "Unauthorized"},
        403: {"description": "Admin only"},
        409: {"description": "Voucher with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_voucher(
    data: VoucherCreate,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Voucher:
    """Create a new voucher."""
    service = VoucherService(db)
    try:
        return service.create_voucher(data)
    except VoucherConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


@router.get(
    "/",
    response_model=list[VoucherResponse],
    summary="List vouchers",
    responses={401: {"description": "Unauthorized"}, 403: {"description": "Admin only"}},
)
async def list_vouchers(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=settings.VOUCHER_LIST_MAX_LIMIT),
    code: str | None = Query(default=None, max_length=64),
    is_enabled: bool | None = None,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> list[Voucher]:
    """List vouchers with optional code and state filters."""
    vouchers, total = VoucherService(db).list_vouchers(
        skip=skip, limit=limit, code=code, is_enabled=is_enabled
    )
    response.headers["X-Total-Count"] = str(total)
    return vouchers


@router.get(
    "/public-active",
    response_model=list[PublicVoucherResponse],
    summary="List publicly available vouchers",
)
async def list_public_active_vouchers(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=settings.VOUCHER_LIST_MAX_LIMIT),
    db: Session = Depends(get_db),
) -> list[Voucher]:
    """Vouchers that are enabled, currently valid and not used up."""
    return VoucherService(db).list_public_active(skip=skip, limit=limit)


@router.get(
    "/applicable",
    response_model=list[VoucherResponse],
    summary="List vouchers applicable to the current user's cart",
    responses={401: {"description": "Unauthorized"}, 404: {"description": "User not found"}},
)
async def list_applicable_vouchers(
    order_value: Decimal | None = Query(default=None, ge=0),
    product_ids: list[UUID] = Query(default=[]),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[Voucher]:
    """Candidate vouchers for the caller's cart, biggest discount value first."""
    order = OrderContext(
        user_id=current_user.user_id,
        subtotal=order_value if order_value is not None else Decimal("0"),
        product_ids=product_ids,
    )
    try:
        return VoucherService(db).find_applicable(order, check_minimum=order_value is not None)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.post(
    "/apply",
    response_model=VoucherApplyResponse,
    summary="Preview a voucher discount",
    responses={
        400: {"description": "Voucher conditions not met", "model": VoucherRejectionResponse},
        401: {"description": "Unauthorized"},
        404: {"description": "Voucher or user not found"},
    },
)
async def apply_voucher(
    data: ApplyVoucherRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> VoucherApplyResponse:
    """Compute the discount a voucher gives on an order. Nothing is consumed."""
    order = OrderContext(
        user_id=current_user.user_id,
        subtotal=data.order_value,
        product_ids=data.product_ids,
    )
    try:
        outcome = VoucherService(db).preview_apply(data.code, order)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None

    if isinstance(outcome, Rejection):
        status_code = 404 if outcome.reason == RejectionReason.NOT_FOUND else 400
        raise HTTPException(status_code=status_code, detail=_rejection_detail(outcome))

    return VoucherApplyResponse(
        voucher_id=outcome.voucher_id,  # type: ignore[arg-type]
        code=outcome.code,  # type: ignore[arg-type]
        discount_amount=outcome.discount_amount,
        final_amount=outcome.final_amount,
    )


@router.get(
    "/code/{code}",
    response_model=VoucherResponse,
    summary="Get a currently valid voucher by code",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Voucher not found or not currently valid"},
    },
)
async def get_voucher_by_code(
    code: str,
    db: Session = Depends(get_db),
    _user: CurrentUser = Depends(get_current_user),
) -> Voucher:
    voucher = VoucherService(db).get_valid_by_code(code)
    if not voucher:
        raise HTTPException(
            status_code=404,
            detail=f"Voucher with code '{code}' not found or is not currently valid",
        )
    return voucher


@router.get(
    "/{voucher_id}",
    response_model=VoucherResponse,
    summary="Get voucher",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Admin only"},
        404: {"description": "Voucher not found"},
    },
)
async def get_voucher(
    voucher_id: UUID,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Voucher:
    voucher = VoucherService(db).get_voucher(voucher_id)
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return voucher


@router.patch(
    "/{voucher_id}",
    response_model=VoucherResponse,
    summary="Update voucher",
    responses={
        400: {"description": "Invalid voucher update"},
        401: {"description": "Unauthorized"},
        403: {"description": "Admin only"},
        404: {"description": "Voucher not found"},
        409: {"description": "Voucher code already used by another voucher"},
    },
)
async def update_voucher(
    voucher_id: UUID,
    data: VoucherUpdate,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Voucher:
    service = VoucherService(db)
    try:
        voucher = service.update_voucher(voucher_id, data)
    except VoucherConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    if not voucher:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return voucher


@router.delete(
    "/{voucher_id}",
    status_code=204,
    summary="Delete voucher",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Admin only"},
        404: {"description": "Voucher not found"},
    },
)
async def delete_voucher(
    voucher_id: UUID,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> None:
    if not VoucherService(db).delete_voucher(voucher_id):
        raise HTTPException(status_code=404, detail="Voucher not found")


@router.post(
    "/{voucher_id}/redemptions",
    response_model=RedemptionResponse,
    status_code=201,
    summary="Redeem voucher for a confirmed order",
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Admin only"},
        409: {"description": "Voucher could not be redeemed", "model": VoucherRejectionResponse},
    },
)
async def redeem_voucher(
    voucher_id: UUID,
    data: RedemptionRequest,
    db: Session = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> RedemptionResponse:
    """Consume one use of a voucher. Call once per confirmed order, never speculatively."""
    outcome = VoucherService(db).commit_redemption(voucher_id, data.user_id)
    if isinstance(outcome, Rejection):
        raise HTTPException(status_code=409, detail=_rejection_detail(outcome))
    return RedemptionResponse(
        voucher_id=outcome.voucher_id,
        user_id=outcome.user_id,
        used_count=outcome.used_count,
    )
