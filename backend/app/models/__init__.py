from app.models.product import Product
from app.models.user import CustomerLevel, User
from app.models.voucher import (
    DiscountType,
    Voucher,
    VoucherCustomerLevel,
    VoucherProduct,
    VoucherRedemption,
)

__all__ = [
    "CustomerLevel",
    "DiscountType",
    "Product",
    "User",
    "Voucher",
    "VoucherCustomerLevel",
    "VoucherProduct",
    "VoucherRedemption",
]
