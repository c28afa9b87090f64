from __future__ import annotations

from fastapi import APIRouter, Query

from devfusion.dependencies import AssistantServiceDep, CurrentUser
from devfusion.exceptions import DevFusionError
from devfusion.models.ai import CodeFeedback
from devfusion.models.api import AIResultResponse, CodeFeedbackRequest, FixErrorRequest, FixErrorResponse
from devfusion.routes.errors import to_http_exception

router = APIRouter(prefix="/ai", tags=["ai"])


@router.get("/get-result", response_model=AIResultResponse)
async def get_result(
    service: AssistantServiceDep,
    current_user: CurrentUser,
    prompt: str = Query(..., min_length=1),
) -> AIResultResponse:
    try:
        reply = await service.get_result(prompt, current_user)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
    return AIResultResponse(reply=reply)


@router.post("/get-feedback", response_model=CodeFeedback)
async def get_feedback(
    payload: CodeFeedbackRequest,
    service: AssistantServiceDep,
    current_user: CurrentUser,
) -> CodeFeedback:
    try:
        return await service.get_feedback(payload.code, current_user, payload.language)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc


@router.post("/fix-error", response_model=FixErrorResponse, response_model_exclude_none=True)
async def fix_error(
    payload: FixErrorRequest,
    service: AssistantServiceDep,
    current_user: CurrentUser,
) -> FixErrorResponse:
    try:
        return await service.fix_error(payload.errorMessage, current_user, payload.language)
    except DevFusionError as exc:
        raise to_http_exception(exc) from exc
