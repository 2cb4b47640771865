from app.db.base import Base  # noqa: F401
from app.models.user import RefreshSession, User, UserRole, UserStatus  # noqa: F401
from app.models.store import Store, StoreImage, StoreImageType  # noqa: F401
from app.models.catalog import (  # noqa: F401
    Inventory,
    Product,
    ProductAttribute,
    ProductImage,
    ProductImageType,
    ProductStatus,
    ProductVariant,
    Review,
    WishlistItem,
)
from app.models.comment import Comment  # noqa: F401
from app.models.customer import Customer  # noqa: F401
from app.models.order import Order, OrderStatus  # noqa: F401
from app.models.asset import AssetDeletion  # noqa: F401

__all__ = [
    "Base",
    "User",
    "UserRole",
    "UserStatus",
    "RefreshSession",
    "Store",
    "StoreImage",
    "StoreImageType",
    "Product",
    "ProductStatus",
    "ProductVariant",
    "Inventory",
    "ProductImage",
    "ProductImageType",
    "ProductAttribute",
    "Review",
    "WishlistItem",
    "Comment",
    "Customer",
    "Order",
    "OrderStatus",
    "AssetDeletion",
]
