import gzip
import json
import time

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Literal, Optional

from gravsim.config import SimulationSettings
from gravsim.models import SystemDescription
from gravsim.physics import samples_for_system

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class ComputeRequest(BaseModel):
    system: SystemDescription
    durationSec: float
    dtSec: float
    warpFactor: float = 1.0
    integrator: Optional[Literal["joint", "per_body"]] = None
    foldThrust: Optional[bool] = None
    profile: Optional[bool] = False


class TrajectorySample(BaseModel):
    t: float
    positions: List[List[float]]
    spins: List[float]


class BodyMetadata(BaseModel):
    name: str
    mass: float
    radius: float
    tilt: float
    meshFile: Optional[str] = None
    textureFile: Optional[str] = None
    color: Optional[str] = None


class Diagnostics(BaseModel):
    simulatedSeconds: float
    energyStart: float
    energyEnd: float
    relativeEnergyDrift: float


class ComputeResponse(BaseModel):
    bodyMetadata: List[BodyMetadata]
    samples: List[TrajectorySample]
    diagnostics: Diagnostics
    meta: dict


def _settings_for(req: ComputeRequest) -> SimulationSettings:
    overrides = {}
    if req.integrator is not None:
        overrides["integrator"] = req.integrator
    if req.foldThrust is not None:
        overrides["fold_thrust"] = req.foldThrust
    return SimulationSettings.from_env().with_overrides(**overrides)


@app.post("/api/compute", response_model=ComputeResponse)
def compute(req: ComputeRequest):
    """
    Simulate the posted system and return sampled trajectories. Optionally
    profiles physics and JSON serialization when `profile` is true.
    """
    payload = req.model_dump()
    profile_enabled = bool(req.profile)
    profile_meta = {"timingsMs": {}} if profile_enabled else None

    physics_start = time.perf_counter()
    try:
        settings = _settings_for(req)
        result = samples_for_system(
            payload["system"],
            req.durationSec,
            req.dtSec,
            warp_factor=req.warpFactor,
            settings=settings,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if profile_enabled:
        profile_meta["timingsMs"]["samples_for_system"] = (
            time.perf_counter() - physics_start
        ) * 1000.0

    meta = {
        "dtSec": req.dtSec,
        "warpFactor": settings.clamp_warp(req.warpFactor),
        "integrator": settings.integrator,
    }
    if profile_enabled:
        profile_meta["serverTimestamp"] = time.time()
        meta["profile"] = profile_meta

    response_payload = {
        "bodyMetadata": result["bodyMetadata"],
        "samples": result["samples"],
        "diagnostics": result["diagnostics"],
        "meta": meta,
    }

    if profile_enabled:
        serialize_start = time.perf_counter()
        serialized = json.dumps(response_payload, separators=(",", ":")).encode("utf-8")
        serialize_ms = (time.perf_counter() - serialize_start) * 1000.0

        profile_meta["timingsMs"]["serialize_response_json"] = serialize_ms
        profile_meta["payloadBytes"] = len(serialized)
        profile_meta["payloadGzipBytes"] = len(gzip.compress(serialized))

        # Serialize again so the response carries the measurements above.
        serialized = json.dumps(response_payload, separators=(",", ":")).encode("utf-8")
        return Response(content=serialized, media_type="application/json")

    return response_payload
