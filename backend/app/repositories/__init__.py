from app.repositories.product_repository import ProductRepository
from app.repositories.user_repository import UserRepository
from app.repositories.voucher_repository import VoucherRepository

__all__ = [
    "ProductRepository",
    "UserRepository",
    "VoucherRepository",
]
