"""
Admin payout API.

    POST /api/admin/payouts/calculate           {weekStart, persist}
    POST /api/admin/payouts/finalize            {weekStart}
    GET  /api/admin/payouts/{weekStart}/proof/{userId}
    POST /api/admin/ranks                       {action, ...}

Responses are {"success": true, "result": ...} or
{"success": false, "error": ..., "errorCode": ...}.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.commission.rank_service import RankService
from app.services.commission.service import CommissionSettlementService
from app.utils.exceptions import (
    CommissionEngineError,
    ConfigurationError,
    FinalizationFailed,
    InvalidWeekError,
    FinalizationOutOfOrder,
    SettlementTimeout,
    WeekAlreadyProcessing,
)

SESSION_MAKER_KEY = web.AppKey("session_maker", async_sessionmaker)
REDIS_KEY = web.AppKey("redis_client", object)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ERROR_STATUS: dict[type[CommissionEngineError], int] = {
    InvalidWeekError: 400,
    WeekAlreadyProcessing: 409,
    FinalizationOutOfOrder: 409,
    SettlementTimeout: 504,
    ConfigurationError: 500,
    FinalizationFailed: 500,
}


class CalculateRequest(BaseModel):
    """Body of the calculate call."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    week_start: str = Field(..., alias="weekStart")
    persist: bool = False


class FinalizeRequest(BaseModel):
    """Body of the finalize call."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    week_start: str = Field(..., alias="weekStart")


class RankActionRequest(BaseModel):
    """Body of the rank administration call."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: Literal["evaluate_single", "evaluate_all", "set_rank", "get_stats"]
    user_id: int | None = Field(default=None, alias="userId", gt=0)
    new_rank: int | None = Field(default=None, alias="newRank", ge=0)
    reason: str | None = Field(default=None, max_length=500)
    week_start: str | None = Field(default=None, alias="weekStart")

    @model_validator(mode="after")
    def check_arguments(self) -> "RankActionRequest":
        if self.action in ("evaluate_single", "set_rank") and self.user_id is None:
            raise ValueError(f"userId is required for {self.action}")
        if self.action == "set_rank" and self.new_rank is None:
            raise ValueError("newRank is required for set_rank")
        return self


def error_response(status: int, message: str, code: str) -> web.Response:
    return web.json_response(
        {"success": False, "error": message, "errorCode": code}, status=status
    )


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Map domain and validation errors to HTTP responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        return error_response(400, errors, "INVALID_REQUEST")
    except CommissionEngineError as e:
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 500
        )
        log = logger.warning if status < 500 else logger.error
        log(f"{request.method} {request.path} failed: {e}")
        return error_response(status, str(e), e.error_code)
    except ValueError as e:
        return error_response(400, str(e), "INVALID_REQUEST")
    except Exception as e:
        logger.exception(f"{request.method} {request.path} failed: {e}")
        return error_response(500, "Internal error", "INTERNAL_ERROR")


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def ok(result: Any) -> web.Response:
    return web.json_response({"success": True, "result": result})


def session_maker(request: web.Request) -> async_sessionmaker[AsyncSession]:
    return request.app[SESSION_MAKER_KEY]


async def calculate_handler(request: web.Request) -> web.Response:
    """Compute (and optionally persist as draft) a week."""
    body = CalculateRequest.model_validate(await read_json(request))
    async with session_maker(request)() as session:
        service = CommissionSettlementService(session, request.app.get(REDIS_KEY))
        outcome = await service.calculate_week(body.week_start, persist=body.persist)
    return ok(outcome.to_dict())


async def finalize_handler(request: web.Request) -> web.Response:
    """Finalize a week (idempotent)."""
    body = FinalizeRequest.model_validate(await read_json(request))
    async with session_maker(request)() as session:
        service = CommissionSettlementService(session, request.app.get(REDIS_KEY))
        outcome = await service.finalize_week(body.week_start)
    return ok(outcome.to_dict())


async def proof_handler(request: web.Request) -> web.Response:
    """Stored settlement leaf and inclusion proof of one member."""
    try:
        user_id = int(request.match_info["userId"])
    except ValueError as e:
        raise ValueError("userId must be an integer") from e

    async with session_maker(request)() as session:
        service = CommissionSettlementService(session, request.app.get(REDIS_KEY))
        proof = await service.get_proof(request.match_info["weekStart"], user_id)
    if proof is None:
        return error_response(404, "No settlement for this user and week", "NOT_FOUND")
    return ok(proof)


async def ranks_handler(request: web.Request) -> web.Response:
    """Rank administration actions."""
    body = RankActionRequest.model_validate(await read_json(request))
    async with session_maker(request)() as session:
        service = RankService(session)
        if body.action == "evaluate_single":
            result = await service.evaluate_user(body.user_id, body.week_start)
            if result is None:
                return error_response(
                    404, f"User {body.user_id} not found or excluded", "NOT_FOUND"
                )
        elif body.action == "evaluate_all":
            result = await service.evaluate_all(body.week_start)
        elif body.action == "set_rank":
            result = await service.set_rank(body.user_id, body.new_rank, body.reason)
        else:
            result = await service.get_stats()
    return ok(result)


def add_payout_routes(app: web.Application) -> None:
    """Mount the admin payout routes."""
    app.router.add_post("/api/admin/payouts/calculate", calculate_handler)
    app.router.add_post("/api/admin/payouts/finalize", finalize_handler)
    app.router.add_get(
        "/api/admin/payouts/{weekStart}/proof/{userId}", proof_handler
    )
    app.router.add_post("/api/admin/ranks", ranks_handler)
