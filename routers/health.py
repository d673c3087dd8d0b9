"""Health check router; also reports how many tools the host registered."""

from fastapi import APIRouter

from dependencies.providers import PluginHostDep

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Health check")
async def health_check(host: PluginHostDep) -> dict[str, object]:
    return {"status": "ok", "tools": len(host.tools)}
