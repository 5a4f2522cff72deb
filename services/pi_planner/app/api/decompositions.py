"""Stand-alone decomposition preview API."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ..domain.decomposer import decompose
from ..domain.errors import PlanningError
from .schemas import DecompositionRequest

router = APIRouter(prefix="/decompositions", tags=["decompositions"])


@router.post("")
async def preview_decomposition(request: DecompositionRequest):
    item = request.item.to_work_item()
    try:
        result = decompose(item, request.max_item_size)
    except PlanningError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": exc.code, "message": exc.message, "relatedIds": list(exc.related_ids)},
        ) from exc
    return result.to_dict()


__all__ = ["router"]
