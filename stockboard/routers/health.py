"""
헬스 체크
"""

from fastapi import APIRouter, Depends

from stockboard.dependencies import Services, get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    store_ok = await services.store.ping()
    return {
        "status": "ok",
        "message": "서버가 정상 작동 중입니다.",
        "store": {"backend": services.settings.store_backend, "healthy": store_ok},
    }
