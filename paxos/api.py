"""
File: paxos/api.py
HTTP API of a Paxos peer.

/rpc receives Prepare, Accept and Decided requests from other peers; the
remaining routes expose the application API (start, status, done, min,
max, kill) plus health, fault-injection toggle and Prometheus metrics.
"""
import time
from typing import Any, Dict, Optional

import structlog
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ValidationError

from common.logging import set_debug_level
from paxos.errors import InvariantViolation, MessageDropped, PeerKilledError
from paxos.messages import parse_request
from paxos.peer import Paxos

log = structlog.get_logger()


class StartRequest(BaseModel):
    seq: int
    value: Any = None


class DoneRequest(BaseModel):
    seq: int


class UnreliableRequest(BaseModel):
    enabled: bool


class DebugConfigRequest(BaseModel):
    enabled: bool


# The peer served by this process
peer: Optional[Paxos] = None

app = FastAPI(title="Paxos Peer")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    log.debug("Request received", method=request.method, path=request.url.path)
    response = await call_next(request)
    log.debug("Response sent", path=request.url.path, status_code=response.status_code)
    return response


def initialize(paxos: Paxos) -> None:
    """
    Attach the peer served by the API.

    Args:
        paxos: The local Paxos peer
    """
    global peer
    peer = paxos
    app.state.start_time = time.time()
    log.info("API initialized", node_id=paxos.me)


def get_peer() -> Paxos:
    if peer is None:
        raise HTTPException(status_code=500, detail="Paxos peer not initialized")
    return peer


@app.exception_handler(PeerKilledError)
async def peer_killed_handler(request: Request, exc: PeerKilledError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.post("/rpc")
async def rpc_endpoint(payload: Dict[str, Any] = Body(...)):
    """
    Peer-to-peer endpoint for PREPARE, ACCEPT and DECIDED requests.

    A dropped message answers 503 so the caller sees "no reply".
    """
    paxos = get_peer()
    try:
        request = parse_request(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        reply = paxos.handle(request)
    except MessageDropped as e:
        raise HTTPException(status_code=503, detail=str(e))
    except InvariantViolation as e:
        log.critical("Invariant violation while serving request", node_id=paxos.me, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return reply.model_dump(mode="json")


@app.post("/start")
async def start_endpoint(request: StartRequest):
    paxos = get_peer()
    paxos.start(request.seq, request.value)
    return {"seq": request.seq, "started": True}


@app.get("/status/{seq}")
async def status_endpoint(seq: int):
    decided, value = get_peer().status(seq)
    return {"seq": seq, "decided": decided, "value": value}


@app.post("/done")
async def done_endpoint(request: DoneRequest):
    paxos = get_peer()
    paxos.done(request.seq)
    return {"min": paxos.min()}


@app.get("/min")
async def min_endpoint():
    return {"min": get_peer().min()}


@app.get("/max")
async def max_endpoint():
    return {"max": get_peer().max()}


@app.post("/unreliable")
async def unreliable_endpoint(request: UnreliableRequest):
    paxos = get_peer()
    paxos.set_unreliable(request.enabled)
    return {"unreliable": paxos.unreliable}


@app.post("/debug/config")
async def configure_debug(config: DebugConfigRequest):
    """Switch DEBUG logging on or off at runtime."""
    set_debug_level(config.enabled)
    return {"status": "success", "debug": config.enabled}


@app.post("/kill")
async def kill_endpoint():
    await get_peer().kill()
    return {"killed": True}


@app.get("/health")
async def health_endpoint():
    paxos = get_peer()
    status = paxos.get_status()
    status["status"] = "dead" if paxos.dead else "healthy"
    status["uptime_seconds"] = time.time() - getattr(app.state, "start_time", time.time())
    return status


@app.get("/metrics")
async def metrics():
    """
    Expose metrics in the Prometheus text format.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
