"""CRUD endpoints, one router per planning collection."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from planpulse.api.dependencies import get_db_session, get_entity_service
from planpulse.api.models import DeleteResponse, EntityListResponse
from planpulse.common.dto.models import RECORD_TYPES


def build_entity_router(collection: str) -> APIRouter:
    path = collection.replace("_", "-")
    record_type = RECORD_TYPES[collection]
    router = APIRouter(prefix=f"/api/v1/{path}", tags=[path])

    @router.get("/", response_model=EntityListResponse, name=f"list_{collection}")
    def list_entities(
        request: Request,
        session: Session = Depends(get_db_session),
        service=Depends(get_entity_service),
    ):
        """List records; any query parameter naming a field filters on it."""
        records = service.list(session, collection, dict(request.query_params))
        return EntityListResponse(items=[r.model_dump(mode="json") for r in records], count=len(records))

    @router.post("/", status_code=201, name=f"create_{collection}")
    def create_entity(
        payload: record_type,
        session: Session = Depends(get_db_session),
        service=Depends(get_entity_service),
    ) -> Dict[str, Any]:
        record = service.create(session, collection, payload.model_dump(exclude_unset=True))
        return record.model_dump(mode="json")

    @router.get("/{entity_id}", name=f"get_{collection}")
    def get_entity(
        entity_id: str,
        session: Session = Depends(get_db_session),
        service=Depends(get_entity_service),
    ) -> Dict[str, Any]:
        return service.get(session, collection, entity_id).model_dump(mode="json")

    @router.put("/{entity_id}", name=f"update_{collection}")
    def update_entity(
        entity_id: str,
        updates: Dict[str, Any],
        session: Session = Depends(get_db_session),
        service=Depends(get_entity_service),
    ) -> Dict[str, Any]:
        """Partial update: omitted fields keep their values."""
        return service.update(session, collection, entity_id, updates).model_dump(mode="json")

    @router.delete("/{entity_id}", response_model=DeleteResponse, name=f"delete_{collection}")
    def delete_entity(
        entity_id: str,
        session: Session = Depends(get_db_session),
        service=Depends(get_entity_service),
    ):
        service.delete(session, collection, entity_id)
        return DeleteResponse(success=True, id=entity_id)

    return router


routers: List[APIRouter] = [build_entity_router(collection) for collection in RECORD_TYPES]
