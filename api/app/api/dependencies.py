from fastapi import Depends, Request

from app.services.adverts import AdvertService
from app.services.background import DetachedTasks
from app.services.lifecycle import AdvertLifecycle
from app.services.object_store import ObjectStore
from app.services.repository import AdvertRepository, get_repository


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


def get_detached_tasks(request: Request) -> DetachedTasks:
    return request.app.state.detached_tasks


def get_lifecycle(request: Request) -> AdvertLifecycle:
    return request.app.state.lifecycle


def get_advert_service(
    repository: AdvertRepository = Depends(get_repository),
    object_store: ObjectStore = Depends(get_object_store),
    lifecycle: AdvertLifecycle = Depends(get_lifecycle),
    detached_tasks: DetachedTasks = Depends(get_detached_tasks),
) -> AdvertService:
    return AdvertService(
        repository=repository,
        object_store=object_store,
        lifecycle=lifecycle,
        detached_tasks=detached_tasks,
    )
