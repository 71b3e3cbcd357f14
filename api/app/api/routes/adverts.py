from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import PlainTextResponse

from app.core.auth import Principal
from app.core.config import Settings, get_settings
from app.core.security import get_optional_principal
from app.schemas.adverts import (
    AdvertLookupOut,
    AdvertOut,
    AdvertPageOut,
    AdvertStatusesOut,
    AdvertStatusPatchOut,
    AdvertStatusPatchRequest,
    AdvertWriteOut,
)
from app.api.dependencies import get_advert_service
from app.services.adverts import AdvertService, ImageUpload
from app.services.catalog import CatalogPage, PageRequest
from app.services.query import AdvertFilters

router = APIRouter()


def _filters(
    name: str | None = Query(default=None),
    tag: str | None = Query(default=None),
    min_price: str | None = Query(default=None, alias="minPrice"),
    max_price: str | None = Query(default=None, alias="maxPrice"),
    category: str | None = Query(default=None),
) -> AdvertFilters:
    return AdvertFilters.from_query(
        name=name,
        tag=tag,
        min_price=min_price,
        max_price=max_price,
        category=category,
    )


def _page_out(page: CatalogPage) -> AdvertPageOut:
    return AdvertPageOut(
        items=[AdvertOut(**item) for item in page.items],
        total=page.total,
        page=page.page,
        total_pages=page.total_pages,
    )


async def _read_image(image: UploadFile | None) -> ImageUpload | None:
    if image is None:
        return None
    content = await image.read()
    if not content:
        return None
    return ImageUpload(filename=image.filename, content=content, content_type=image.content_type)


@router.get("", response_model=AdvertPageOut)
async def list_adverts(
    filters: AdvertFilters = Depends(_filters),
    sort: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
    service: AdvertService = Depends(get_advert_service),
) -> AdvertPageOut:
    page_request = PageRequest.from_query(
        page=page,
        limit=limit,
        sort=sort,
        default_limit=settings.catalog_page_size,
        max_limit=settings.max_page_size,
    )
    return _page_out(await service.list_catalog(filters, page_request))


@router.get("/statuses", response_model=AdvertStatusesOut)
async def list_advert_statuses(service: AdvertService = Depends(get_advert_service)) -> AdvertStatusesOut:
    return AdvertStatusesOut(result=list(service.lifecycle.statuses))


@router.get("/user/{owner_name}", response_model=AdvertPageOut)
async def list_owner_adverts(
    owner_name: str,
    filters: AdvertFilters = Depends(_filters),
    sort: str | None = Query(default=None),
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
    service: AdvertService = Depends(get_advert_service),
) -> AdvertPageOut:
    page_request = PageRequest.from_query(
        page=page,
        limit=limit,
        sort=sort,
        default_limit=settings.owner_page_size,
        max_limit=settings.max_page_size,
    )
    return _page_out(await service.list_by_owner(owner_name, filters, page_request))


@router.get("/item/{slug}", response_model=AdvertLookupOut)
async def get_advert_by_slug(slug: str, service: AdvertService = Depends(get_advert_service)) -> AdvertLookupOut:
    advert = await service.get_by_slug(slug)
    return AdvertLookupOut(result=AdvertOut(**advert) if advert else None)


@router.post("", response_model=AdvertWriteOut, status_code=status.HTTP_201_CREATED)
async def create_advert(
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    category: str | None = Form(default=None),
    price: str | None = Form(default=None),
    tags: list[str] | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    principal: Principal | None = Depends(get_optional_principal),
    service: AdvertService = Depends(get_advert_service),
) -> AdvertWriteOut:
    advert = await service.create_advert(
        principal,
        title=title,
        description=description,
        category=category,
        price=price,
        tags=tags,
        image=await _read_image(image),
    )
    return AdvertWriteOut(message="advert created", advert=AdvertOut(**advert))


@router.put("/{advert_id}", response_model=AdvertWriteOut)
async def edit_advert(
    advert_id: str,
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    category: str | None = Form(default=None),
    price: str | None = Form(default=None),
    tags: list[str] | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    principal: Principal | None = Depends(get_optional_principal),
    service: AdvertService = Depends(get_advert_service),
) -> AdvertWriteOut:
    advert = await service.edit_advert(
        advert_id,
        principal,
        title=title,
        description=description,
        category=category,
        price=price,
        tags=tags,
        image=await _read_image(image),
    )
    return AdvertWriteOut(message="advert updated", advert=AdvertOut(**advert))


@router.patch("/{advert_id}/status", response_model=AdvertStatusPatchOut)
async def change_advert_status(
    advert_id: str,
    payload: AdvertStatusPatchRequest | None = Body(default=None),
    principal: Principal | None = Depends(get_optional_principal),
    service: AdvertService = Depends(get_advert_service),
) -> AdvertStatusPatchOut:
    await service.change_status(advert_id, principal, payload.status if payload else None)
    return AdvertStatusPatchOut(result="advert status updated")


@router.delete("/{advert_id}", response_class=PlainTextResponse)
async def delete_advert(
    advert_id: str,
    principal: Principal | None = Depends(get_optional_principal),
    service: AdvertService = Depends(get_advert_service),
) -> str:
    await service.delete_advert(advert_id, principal)
    return "advert deleted"
