from __future__ import annotations

from fastapi import APIRouter, Depends

from bidportal.authz import HierarchyCache
from bidportal.security.dependencies import get_hierarchy_cache

router = APIRouter(tags=["health"])


@router.get("/health")
def health(cache: HierarchyCache = Depends(get_hierarchy_cache)) -> dict[str, object]:
    return {"status": "ok", "hierarchy_version": cache.version}
