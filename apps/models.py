"""
Model registration: import every table model so SQLModel.metadata knows it
before create_all runs (app startup, audit worker, tests).
"""
from apps.identity.models import AppUser
from apps.audit.models import UserAction
from apps.catalog.models import AnimeSeries, Category, Product, ProductImage
from apps.cart.models import CartItem, ShoppingCart
from apps.coupons.models import Coupon, UserCoupon
from apps.wishlist.models import Wishlist, WishlistItem
from apps.reviews.models import ProductReview

__all__ = [
    "AppUser",
    "UserAction",
    "Category",
    "AnimeSeries",
    "Product",
    "ProductImage",
    "ShoppingCart",
    "CartItem",
    "Coupon",
    "UserCoupon",
    "Wishlist",
    "WishlistItem",
    "ProductReview",
]
