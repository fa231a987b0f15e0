from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..schemas.experiences import ExperienceConfigRequest, ExperienceConfigResponse
from ...services.experience_config_service import (
    ExperienceConfigService,
    get_experience_config_service,
)


router = APIRouter()


@router.get(
    "/{experience_id}/config",
    response_model=ExperienceConfigResponse,
    summary="익스피리언스 설정 조회",
)
async def get_experience_config(
    experience_id: str,
    service: ExperienceConfigService = Depends(get_experience_config_service),
) -> ExperienceConfigResponse:
    config = service.get_config(experience_id)
    if config is None:
        raise HTTPException(status_code=404, detail="experience not found")
    return ExperienceConfigResponse.from_domain(config)


@router.put(
    "/{experience_id}/config",
    response_model=ExperienceConfigResponse,
    summary="익스피리언스 설정 저장",
)
async def save_experience_config(
    experience_id: str,
    body: ExperienceConfigRequest,
    service: ExperienceConfigService = Depends(get_experience_config_service),
) -> ExperienceConfigResponse:
    # 검증 실패(ConfigValidationError)는 main 의 예외 핸들러가 422 로 변환한다.
    saved = service.save_config(experience_id, body.to_domain())
    return ExperienceConfigResponse.from_domain(saved)
