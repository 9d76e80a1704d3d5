"""
Session Routes

Login/logout for the UI. The access token stays inside the agent: responses
carry the user profile and status only.
"""

from fastapi import APIRouter, BackgroundTasks
from fastapi.responses import JSONResponse

from compliance_sync.application.api.dependencies import ContextDep
from compliance_sync.application.api.models import LoginRequest
from compliance_sync.core.config.constants import ErrorCode
from compliance_sync.core.models.envelope import ApiResponse

router = APIRouter(prefix="/session", tags=["Session"])

LOGIN_ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR.value: 422,
    ErrorCode.RATE_LIMITED.value: 429,
    ErrorCode.INVALID_CREDENTIALS.value: 401,
    ErrorCode.CIRCUIT_OPEN.value: 503,
    ErrorCode.TIMEOUT.value: 504,
    ErrorCode.NETWORK_ERROR.value: 502,
}


@router.get("")
async def get_session(ctx: ContextDep):
    return ctx.session.snapshot()


@router.post("/login")
async def login(body: LoginRequest, ctx: ContextDep, background_tasks: BackgroundTasks):
    result = await ctx.session.login(body.identifier, body.secret)
    if not result.success:
        error = result.error
        headers = {"Retry-After": str(error.retry_after)} if error.retry_after else None
        return JSONResponse(
            status_code=LOGIN_ERROR_STATUS.get(error.code, 400),
            content=ApiResponse(success=False, error=error).to_wire(),
            headers=headers,
        )

    ctx.orchestrator.auth_required = False
    background_tasks.add_task(ctx.orchestrator.attempt_drain, "login")
    return ApiResponse.ok(ctx.session.snapshot()).to_wire()


@router.post("/logout")
async def logout(ctx: ContextDep):
    await ctx.session.logout()
    return ApiResponse.ok(ctx.session.snapshot()).to_wire()
