import uuid
from typing import Optional
from fastapi import APIRouter, Depends
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, cms_access, get_optional_user
from ..schemas import (
    AnimeSeriesFilter,
    AnimeSeriesRequest,
    CategoryFilter,
    CategoryRequest,
    ProductFilter,
    ProductRequest,
)
from ..service import AnimeSeriesService, CategoryService, ProductService

router = APIRouter()


def get_category_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: Optional[CurrentUser] = Depends(get_optional_user)
) -> CategoryService:
    return CategoryService(uow, current_user)


def get_anime_series_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: Optional[CurrentUser] = Depends(get_optional_user)
) -> AnimeSeriesService:
    return AnimeSeriesService(uow, current_user)


def get_product_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: Optional[CurrentUser] = Depends(get_optional_user)
) -> ProductService:
    return ProductService(uow, current_user)


# --- Categories ---

@router.get("/categories", tags=["Categories"])
async def get_category_list(
    filter: CategoryFilter = Depends(),
    service: CategoryService = Depends(get_category_service)
):
    return (await service.get_category_list(filter)).to_response()


@router.get("/categories/select-list", tags=["Categories"])
async def get_category_select_list(
    search: Optional[str] = None,
    service: CategoryService = Depends(get_category_service)
):
    return (await service.get_select_list(search)).to_response()


@router.get("/categories/{category_id}", tags=["Categories"])
async def get_category(
    category_id: uuid.UUID,
    service: CategoryService = Depends(get_category_service)
):
    return (await service.get_category(category_id)).to_response()


@router.post("/categories", tags=["Categories"], dependencies=[Depends(cms_access)])
async def create_category(
    data: CategoryRequest,
    service: CategoryService = Depends(get_category_service)
):
    return (await service.create_category(data)).to_response()


@router.put("/categories/{category_id}", tags=["Categories"], dependencies=[Depends(cms_access)])
async def update_category(
    category_id: uuid.UUID,
    data: CategoryRequest,
    service: CategoryService = Depends(get_category_service)
):
    return (await service.update_category(category_id, data)).to_response()


@router.delete("/categories/{category_id}", tags=["Categories"], dependencies=[Depends(cms_access)])
async def delete_category(
    category_id: uuid.UUID,
    service: CategoryService = Depends(get_category_service)
):
    return (await service.delete_category(category_id)).to_response()


# --- Anime series ---

@router.get("/anime-series", tags=["Anime Series"])
async def get_anime_series_list(
    filter: AnimeSeriesFilter = Depends(),
    service: AnimeSeriesService = Depends(get_anime_series_service)
):
    return (await service.get_anime_series_list(filter)).to_response()


@router.get("/anime-series/select-list", tags=["Anime Series"])
async def get_anime_series_select_list(service: AnimeSeriesService = Depends(get_anime_series_service)):
    return (await service.get_select_list()).to_response()


@router.get("/anime-series/{series_id}", tags=["Anime Series"])
async def get_anime_series(
    series_id: uuid.UUID,
    service: AnimeSeriesService = Depends(get_anime_series_service)
):
    return (await service.get_anime_series(series_id)).to_response()


@router.post("/anime-series", tags=["Anime Series"], dependencies=[Depends(cms_access)])
async def create_anime_series(
    data: AnimeSeriesRequest,
    service: AnimeSeriesService = Depends(get_anime_series_service)
):
    return (await service.create_anime_series(data)).to_response()


@router.put("/anime-series/{series_id}", tags=["Anime Series"], dependencies=[Depends(cms_access)])
async def update_anime_series(
    series_id: uuid.UUID,
    data: AnimeSeriesRequest,
    service: AnimeSeriesService = Depends(get_anime_series_service)
):
    return (await service.update_anime_series(series_id, data)).to_response()


@router.delete("/anime-series/{series_id}", tags=["Anime Series"], dependencies=[Depends(cms_access)])
async def delete_anime_series(
    series_id: uuid.UUID,
    service: AnimeSeriesService = Depends(get_anime_series_service)
):
    return (await service.delete_anime_series(series_id)).to_response()


# --- Products ---

@router.get("/products", tags=["Products"])
async def get_product_list(
    filter: ProductFilter = Depends(),
    service: ProductService = Depends(get_product_service)
):
    return (await service.get_product_list(filter)).to_response()


@router.get("/products/{product_id}", tags=["Products"])
async def get_product(
    product_id: uuid.UUID,
    service: ProductService = Depends(get_product_service)
):
    return (await service.get_product(product_id)).to_response()


@router.post("/products", tags=["Products"], dependencies=[Depends(cms_access)])
async def create_product(
    data: ProductRequest,
    service: ProductService = Depends(get_product_service)
):
    return (await service.create_product(data)).to_response()


@router.put("/products/{product_id}", tags=["Products"], dependencies=[Depends(cms_access)])
async def update_product(
    product_id: uuid.UUID,
    data: ProductRequest,
    service: ProductService = Depends(get_product_service)
):
    return (await service.update_product(product_id, data)).to_response()


@router.delete("/products/{product_id}", tags=["Products"], dependencies=[Depends(cms_access)])
async def delete_product(
    product_id: uuid.UUID,
    service: ProductService = Depends(get_product_service)
):
    return (await service.delete_product(product_id)).to_response()
