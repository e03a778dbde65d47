from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Response
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)

from .models.property import Property, PropertyListResponse
from .models.search import FilterSettings, SearchRequest
from .services import filtering
from .services.export import ExportService
from .services.orchestrator import EnrichmentOrchestrator, build_orchestrator
from .utils.logging import get_logger

LOGGER = get_logger("api")

app = FastAPI()
router = APIRouter(prefix="/api")
export_service = ExportService()

_orchestrator: Optional[EnrichmentOrchestrator] = None


def get_orchestrator() -> EnrichmentOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


class FilterRequest(BaseModel):
    settings: FilterSettings = Field(default_factory=FilterSettings)


def _listing(all_properties: List[Property], settings: FilterSettings, superseded: bool = False) -> dict:
    items = filtering.apply(all_properties, settings)
    payload = PropertyListResponse(items=items, total=len(items), available=len(all_properties), superseded=superseded)
    return jsonable_encoder(payload)


@router.post("/search")
def search(req: SearchRequest, orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator)):
    run = orchestrator.submit(req.request)
    if run is None:
        return _listing([], req.settings, superseded=True)
    LOGGER.info("search_done location=%s properties=%s", req.request.geo_location.description, len(run.properties))
    return _listing(run.properties, req.settings)


@router.post("/filter")
def refilter(req: FilterRequest, orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator)):
    return _listing(orchestrator.properties, req.settings)


@router.post("/export")
def export(req: FilterRequest, orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator)):
    items = filtering.apply(orchestrator.properties, req.settings)
    return Response(
        content=export_service.render(items),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=properties.csv"},
    )


@router.get("/status")
def status(orchestrator: EnrichmentOrchestrator = Depends(get_orchestrator)):
    return {
        "loading": orchestrator.loading,
        "phase": orchestrator.phase.value,
        "committed_sequence": orchestrator.committed_sequence,
        "available": len(orchestrator.properties),
    }


@router.get("/health")
def health(): return {"status":"ok"}

app.include_router(router)
