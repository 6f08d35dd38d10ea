import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import Text
from sqlmodel import Field, Column, Relationship
from framework.entity import BaseEntity


class Category(BaseEntity, table=True):
    __tablename__ = "categories"
    name: str = Field(index=True, max_length=100)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    image_path: Optional[str] = Field(default=None, max_length=500)
    parent_category_id: Optional[uuid.UUID] = Field(default=None, foreign_key="categories.id", index=True)


class AnimeSeries(BaseEntity, table=True):
    __tablename__ = "anime_series"
    title: str = Field(unique=True, index=True, max_length=200)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    release_year: Optional[int] = None
    image_path: Optional[str] = Field(default=None, max_length=500)


class Product(BaseEntity, table=True):
    __tablename__ = "products"
    name: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    price: Decimal = Field(max_digits=18, decimal_places=2)
    discount_price: Optional[Decimal] = Field(default=None, max_digits=18, decimal_places=2)
    stock_quantity: int = Field(default=0)
    category_id: uuid.UUID = Field(foreign_key="categories.id", index=True)
    anime_series_id: Optional[uuid.UUID] = Field(default=None, foreign_key="anime_series.id", index=True)
    is_pre_order: bool = Field(default=False)
    pre_order_release_date: Optional[datetime] = None

    category: Optional[Category] = Relationship()
    anime_series: Optional[AnimeSeries] = Relationship()
    images: List["ProductImage"] = Relationship(back_populates="product")


class ProductImage(BaseEntity, table=True):
    __tablename__ = "product_images"
    product_id: uuid.UUID = Field(foreign_key="products.id", index=True)
    image_path: str = Field(max_length=500)
    is_primary: bool = Field(default=False)
    display_order: int = Field(default=0)

    product: Optional[Product] = Relationship(back_populates="images")
