"""
MintGate — HTTP API over the policy engine.

FastAPI application providing:
- Issuance and transfer operations (mint, transfer, transfer-from)
- Halt switch, role administration and governance policy
- Foreign asset recovery
- Read-only status, balances and the audit trail

The acting principal is taken from the ``X-Principal`` header and is NOT
authenticated: any client that can reach the API can act as any principal,
Admin included. Setting ``MINTGATE_API_TOKEN`` requires every operation to
also carry ``Authorization: Bearer <token>``, which limits access to holders
of the shared token but still trusts them to name the principal. Deploy
behind a gateway that authenticates callers and sets ``X-Principal``.

Policy rejections are returned as ``{"error": kind, "detail": message}``.

Serve with ``mintgate-api`` (uvicorn on ``MINTGATE_API_HOST``/``MINTGATE_API_PORT``).
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mintgate.config import settings
from mintgate.policy.errors import ErrorKind, PolicyError
from mintgate.policy.schema import Role

logger = logging.getLogger(__name__)


# ── Pydantic request models ────────────────────────────────────


class MintRequest(BaseModel):
    to: str
    amount: int = Field(ge=0)
    now: int | None = None


class TransferRequest(BaseModel):
    to: str
    amount: int = Field(ge=0)
    now: int | None = None


class TransferFromRequest(BaseModel):
    owner: str
    to: str
    amount: int = Field(ge=0)
    now: int | None = None


class ApproveRequest(BaseModel):
    spender: str
    amount: int = Field(ge=0)


class PauseRequest(BaseModel):
    reason: str = ""
    now: int | None = None


class RoleRequest(BaseModel):
    principal: str
    role: Role
    now: int | None = None


class BlacklistRequest(BaseModel):
    principal: str
    blacklisted: bool
    now: int | None = None


class DailyLimitRequest(BaseModel):
    principal: str
    limit: int = Field(ge=0)
    now: int | None = None


class RecoverRequest(BaseModel):
    asset_id: str
    to: str
    amount: int = Field(ge=0)
    now: int | None = None


class ApiState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.engine: Any = None
        self.ledger: Any = None
        self.foreign_assets: dict[str, Any] = {}
        self.startup_time: datetime = datetime.now(timezone.utc)


state = ApiState()

ERROR_STATUS = {
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_A_MINTER: 403,
    ErrorKind.HALTED: 423,
}


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine from settings unless one was injected."""
    if state.engine is None:
        from mintgate.orchestrator import build_engine

        state.engine, state.ledger = build_engine(settings)
        logger.info("MintGate API started with asset %s", settings.asset_id)
    yield
    logger.info("MintGate API shutting down")


app = FastAPI(title="MintGate", lifespan=lifespan)


@app.exception_handler(PolicyError)
async def policy_error_handler(request: Request, exc: PolicyError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, 409),
        content={"error": exc.kind.value, "detail": exc.message},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": "invalid_request", "detail": str(exc)})


def _engine():
    if state.engine is None:
        raise HTTPException(status_code=503, detail="Policy engine not initialized")
    return state.engine


def acting_principal(
    x_principal: str = Header(),
    authorization: str | None = Header(default=None),
) -> str:
    """Return the ``X-Principal`` header, checking the shared API token when one is set."""
    if settings.api_token:
        token = authorization[7:] if authorization and authorization.startswith("Bearer ") else ""
        if not hmac.compare_digest(token.encode(), settings.api_token.encode()):
            raise HTTPException(status_code=401, detail="Invalid or missing API token")
    return x_principal


def _record(record) -> dict[str, Any]:
    return record.model_dump(mode="json")


# ── Operations ─────────────────────────────────────────────────


@app.post("/api/mint")
async def api_mint(req: MintRequest, x_principal: str = Depends(acting_principal)):
    return _record(_engine().mint(x_principal, req.to, req.amount, now=req.now))


@app.post("/api/transfer")
async def api_transfer(req: TransferRequest, x_principal: str = Depends(acting_principal)):
    return _record(_engine().transfer(x_principal, req.to, req.amount, now=req.now))


@app.post("/api/transfer-from")
async def api_transfer_from(req: TransferFromRequest, x_principal: str = Depends(acting_principal)):
    record = _engine().transfer_from(x_principal, req.owner, req.to, req.amount, now=req.now)
    return _record(record)


@app.post("/api/approve")
async def api_approve(req: ApproveRequest, x_principal: str = Depends(acting_principal)):
    if state.ledger is None:
        raise HTTPException(status_code=503, detail="Ledger not initialized")
    state.ledger.approve(x_principal, req.spender, req.amount)
    return {"owner": x_principal, "spender": req.spender, "allowance": req.amount}


@app.post("/api/pause")
async def api_pause(req: PauseRequest, x_principal: str = Depends(acting_principal)):
    changed = _engine().pause(x_principal, reason=req.reason, now=req.now)
    return {"paused": True, "changed": changed}


@app.post("/api/unpause")
async def api_unpause(req: PauseRequest, x_principal: str = Depends(acting_principal)):
    changed = _engine().unpause(x_principal, now=req.now)
    return {"paused": False, "changed": changed}


@app.post("/api/roles/grant")
async def api_grant_role(req: RoleRequest, x_principal: str = Depends(acting_principal)):
    changed = _engine().grant_role(x_principal, req.principal, req.role, now=req.now)
    return {"principal": req.principal, "role": req.role.value, "changed": changed}


@app.post("/api/roles/revoke")
async def api_revoke_role(req: RoleRequest, x_principal: str = Depends(acting_principal)):
    changed = _engine().revoke_role(x_principal, req.principal, req.role, now=req.now)
    return {"principal": req.principal, "role": req.role.value, "changed": changed}


@app.post("/api/blacklist")
async def api_blacklist(req: BlacklistRequest, x_principal: str = Depends(acting_principal)):
    changed = _engine().set_blacklisted(x_principal, req.principal, req.blacklisted, now=req.now)
    return {"principal": req.principal, "blacklisted": req.blacklisted, "changed": changed}


@app.post("/api/daily-limit")
async def api_daily_limit(req: DailyLimitRequest, x_principal: str = Depends(acting_principal)):
    return _record(_engine().set_daily_limit(x_principal, req.principal, req.limit, now=req.now))


@app.post("/api/recover")
async def api_recover(req: RecoverRequest, x_principal: str = Depends(acting_principal)):
    engine = _engine()
    if req.asset_id == engine.ledger.asset_id:
        token = engine.ledger
    else:
        token = state.foreign_assets.get(req.asset_id)
        if token is None:
            raise HTTPException(status_code=404, detail=f"Unknown asset {req.asset_id}")
    return _record(engine.recover(x_principal, token, req.to, req.amount, now=req.now))


# ── Queries ────────────────────────────────────────────────────


@app.get("/api/status")
async def api_status():
    engine = _engine()
    return {
        "asset_id": engine.ledger.asset_id,
        "paused": engine.paused,
        "total_issued": engine.total_issued,
        "remaining_supply": engine.remaining_supply,
        "max_supply": engine.limits.max_supply,
        "mint_window": {"start_time": engine.window.start_time, "end_time": engine.window.end_time},
        "roles": {role.value: engine.roles.members(role) for role in Role},
        "blacklisted": engine.deny_list.listed(),
    }


@app.get("/api/balances/{principal}")
async def api_balance(principal: str):
    engine = _engine()
    return {
        "principal": principal,
        "balance": engine.balance_of(principal),
        "blacklisted": engine.is_blacklisted(principal),
    }


@app.get("/api/quota/{principal}")
async def api_quota(principal: str, now: int | None = None):
    engine = _engine()
    return {
        "principal": principal,
        "daily_cap": engine.daily_cap(principal),
        "remaining": engine.remaining_daily_quota(principal, now),
    }


@app.get("/api/audit")
async def api_audit(limit: int = 50):
    return [_record(r) for r in _engine().audit.latest(limit)]


@app.get("/api/audit/verify")
async def api_audit_verify():
    is_valid, verified, message = _engine().audit.verify_chain()
    return {"valid": is_valid, "records_verified": verified, "message": message}


@app.get("/health")
async def health():
    return {
        "status": "ok" if state.engine is not None else "starting",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
    }


def serve() -> None:
    """Run the API under uvicorn with the configured host and port."""
    from mintgate.orchestrator import configure_logging

    configure_logging(settings)
    uvicorn.run(
        "mintgate.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    serve()
