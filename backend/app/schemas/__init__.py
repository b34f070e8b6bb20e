from app.schemas.product import ProductCreate
from app.schemas.user import UserCreate
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

__all__ = [
    "ApplyVoucherRequest",
    "ProductCreate",
    "PublicVoucherResponse",
    "RedemptionRequest",
    "RedemptionResponse",
    "UserCreate",
    "VoucherApplyResponse",
    "VoucherCreate",
    "VoucherRejectionResponse",
    "VoucherResponse",
    "VoucherUpdate",
]
