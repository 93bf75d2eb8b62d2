import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from typing import List, Dict, Any
from pydantic import ValidationError

from threatlens.core.page_collector import PageCollector
from threatlens.schemas import (
    CleanUrlResult, ExportBundle, HealthResponse, HtmlAnalysisRequest, ImportRequest,
    PageData, SecuritySettings, SecurityStats, ThreatAssessment, UrlRequest,
    WhitelistCheck, WhitelistRequest,
)
from threatlens.services.security_core import SecurityCore

logger = logging.getLogger(__name__)

router = APIRouter()

page_collector = PageCollector()


def get_core(request: Request) -> SecurityCore:
    """Dependency for FastAPI routes"""
    core = getattr(request.app.state, "core", None)
    if core is None:
        raise HTTPException(status_code=503, detail="Security engine is not initialized")
    return core

# ============================================================================
# ANALYSIS ENDPOINTS
# ============================================================================

@router.post("/analyze/url", response_model=ThreatAssessment)
def analyze_url(payload: UrlRequest, core: SecurityCore = Depends(get_core)):
    """Score a single URL"""
    try:
        return core.analyze_url(payload.url)
    except Exception as e:
        logger.error(f"❌ Error in /analyze/url: {e}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {str(e)}")


@router.post("/analyze/page", response_model=ThreatAssessment)
def analyze_page(page: PageData, core: SecurityCore = Depends(get_core)):
    """Score a page from collector-supplied PageData"""
    try:
        return core.analyze_page(page)
    except Exception as e:
        logger.error(f"❌ Error in /analyze/page: {e}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {str(e)}")


@router.post("/analyze/html", response_model=ThreatAssessment)
def analyze_html(payload: HtmlAnalysisRequest, core: SecurityCore = Depends(get_core)):
    """Build PageData from raw HTML, then score it like /analyze/page"""
    try:
        page = page_collector.collect(payload.url, payload.html, payload.timestamp)
        return core.analyze_page(page)
    except Exception as e:
        logger.error(f"❌ Error in /analyze/html: {e}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {str(e)}")


@router.post("/clean-url", response_model=CleanUrlResult)
def clean_url(payload: UrlRequest, core: SecurityCore = Depends(get_core)):
    return core.clean_url(payload.url)


@router.post("/safe-search")
def enforce_safe_search(payload: UrlRequest, core: SecurityCore = Depends(get_core)):
    return core.enforce_safe_search(payload.url)

# ============================================================================
# WHITELIST ENDPOINTS
# ============================================================================

@router.get("/whitelist", response_model=List[str])
def get_whitelist(core: SecurityCore = Depends(get_core)):
    return core.get_whitelist()


@router.post("/whitelist", response_model=List[str])
def add_to_whitelist(payload: WhitelistRequest, core: SecurityCore = Depends(get_core)):
    if not core.add_to_whitelist(payload.domain):
        raise HTTPException(status_code=422, detail="Invalid domain")
    return core.get_whitelist()


@router.delete("/whitelist/{domain}")
def remove_from_whitelist(domain: str, core: SecurityCore = Depends(get_core)):
    if not core.remove_from_whitelist(domain):
        raise HTTPException(status_code=404, detail="Domain not in whitelist")
    return {"status": "success", "message": f"{domain} removed from whitelist"}


@router.get("/whitelist/check/{domain}", response_model=WhitelistCheck)
def check_whitelist(domain: str, core: SecurityCore = Depends(get_core)):
    return {"domain": domain, "is_whitelisted": core.is_whitelisted(domain)}

# ============================================================================
# STATISTICS & SETTINGS ENDPOINTS
# ============================================================================

@router.get("/statistics", response_model=SecurityStats)
def get_statistics(core: SecurityCore = Depends(get_core)):
    return core.get_stats()


@router.post("/statistics/reset", response_model=SecurityStats)
def reset_statistics(core: SecurityCore = Depends(get_core)):
    return core.reset_stats()


@router.get("/settings", response_model=SecuritySettings)
def get_settings(core: SecurityCore = Depends(get_core)):
    return core.get_settings()


@router.patch("/settings", response_model=SecuritySettings)
def update_settings(partial: Dict[str, Any], core: SecurityCore = Depends(get_core)):
    try:
        return core.update_settings(partial)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))


@router.get("/export", response_model=ExportBundle)
def export_data(core: SecurityCore = Depends(get_core)):
    return core.export_data()


@router.post("/import")
def import_data(payload: ImportRequest, core: SecurityCore = Depends(get_core)):
    try:
        return {"status": "success", **core.import_data(payload.model_dump(exclude_unset=True, exclude_none=True))}
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request):
    core = getattr(request.app.state, "core", None)
    if core is None:
        return {"status": "starting", "ready": False, "readiness": {}, "diagnostics": [],
                "timestamp": int(time.time() * 1000)}

    readiness = core.readiness
    ready = all(readiness.values())
    return {
        "status": "healthy" if ready else "degraded",
        "ready": ready,
        "readiness": readiness,
        "diagnostics": core.diagnostics,
        "timestamp": int(time.time() * 1000)
    }
