"""Report cache inspection and invalidation."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from planpulse.api.dependencies import get_report_cache

router = APIRouter(prefix="/api/v1/cache", tags=["cache"])


@router.get("/stats")
def cache_stats(cache=Depends(get_report_cache)):
    return cache.stats()


@router.delete("/")
def clear_cache(
    pattern: Optional[str] = Query(None, description="Regex; only matching keys are dropped"),
    cache=Depends(get_report_cache),
):
    if pattern:
        return {"removed": cache.invalidate_pattern(pattern)}
    removed = len(cache.keys())
    cache.clear()
    return {"removed": removed}
