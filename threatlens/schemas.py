from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any

from threatlens.config import settings

# ==========================================
# 🧱 SHARED MODELS
# ==========================================

class ThreatLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NONE = "NONE"

class Recommendation(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    ALLOW = "ALLOW"

class Flag(BaseModel):
    type: str
    detail: Optional[str] = None
    score: int = Field(default=0, ge=0)

# ==========================================
# 📄 PAGE DATA (sent by the content collector)
# ==========================================

class _CamelModel(BaseModel):
    """Accepts both snake_case and the collector's camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class InputField(_CamelModel):
    type: Optional[str] = "text"
    name: Optional[str] = None
    id: Optional[str] = None
    placeholder: Optional[str] = None

class FormData(_CamelModel):
    action: Optional[str] = ""
    method: Optional[str] = "GET"
    inputs: List[InputField] = []

class ImageData(_CamelModel):
    src: Optional[str] = ""
    alt: Optional[str] = ""

class HiddenField(_CamelModel):
    name: Optional[str] = None
    id: Optional[str] = None

class PageData(_CamelModel):
    url: str
    domain: Optional[str] = None
    title: str = ""
    text_content: str = ""
    forms: List[FormData] = []
    images: List[ImageData] = []
    hidden_fields: List[HiddenField] = []
    has_popup_login: bool = False
    has_iframe_login: bool = False
    right_click_disabled: bool = False
    domain_age: Optional[int] = None
    timestamp: Optional[int] = None

    @field_validator("title", "text_content", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or ""

    @field_validator("text_content")
    @classmethod
    def _truncate_text(cls, v: str) -> str:
        return v[:settings.MAX_TEXT_LENGTH]

    @field_validator("images")
    @classmethod
    def _cap_images(cls, v: List[ImageData]) -> List[ImageData]:
        return v[:settings.MAX_IMAGES]

# ==========================================
# 📤 RESPONSE MODELS
# ==========================================

class ThreatAssessment(BaseModel):
    url: str
    domain: Optional[str] = ""
    threat_score: int = Field(default=0, ge=0, le=100)
    threat_level: ThreatLevel = ThreatLevel.NONE
    recommendation: Recommendation = Recommendation.ALLOW
    flags: List[Flag] = []
    analysis: Dict[str, Any] = {}
    is_whitelisted: bool = False
    is_phishing: bool = False
    timestamp: int

class SecurityStats(BaseModel):
    urls_analyzed: int = 0
    threats_blocked: int = 0
    phishing_detected: int = 0
    content_blocked: int = 0
    urls_cleaned: int = 0
    trackers_blocked: Dict[str, int] = {}
    whitelist_count: int = 0
    last_updated: Optional[int] = None

class CleanUrlResult(BaseModel):
    modified: bool
    original_url: str
    cleaned_url: str
    removed_params: List[str] = []
    preserved_params: List[str] = []

class WhitelistCheck(BaseModel):
    domain: str
    is_whitelisted: bool

class PatternDiagnosticOut(BaseModel):
    dataset: str
    pattern: str
    error: str

class HealthResponse(BaseModel):
    status: str
    ready: bool
    readiness: Dict[str, bool]
    diagnostics: List[PatternDiagnosticOut] = []
    timestamp: int

# ==========================================
# ⚙️ RUNTIME SETTINGS
# ==========================================

class FeatureFlags(BaseModel):
    url_analysis: bool = True
    phishing_detection: bool = True
    content_filtering: bool = True
    privacy_protection: bool = True
    safe_search_enforcement: bool = True
    homograph_detection: bool = True
    typosquatting_detection: bool = True
    tracker_blocking: bool = True

class CategorySetting(BaseModel):
    enabled: bool = False
    strictness: str = "medium"

    @field_validator("strictness")
    @classmethod
    def _known_strictness(cls, v: str) -> str:
        if v not in ("low", "medium", "high"):
            raise ValueError("strictness must be one of low, medium, high")
        return v

class ContentCategorySettings(BaseModel):
    adult: CategorySetting = CategorySetting(enabled=True, strictness="high")
    gambling: CategorySetting = CategorySetting(enabled=False, strictness="medium")
    violence: CategorySetting = CategorySetting(enabled=False, strictness="medium")
    drugs: CategorySetting = CategorySetting(enabled=False, strictness="low")
    piracy: CategorySetting = CategorySetting(enabled=False, strictness="low")

class TrackerCategorySettings(BaseModel):
    analytics: bool = True
    advertising: bool = True
    social: bool = False
    fingerprinting: bool = True

class PrivacySettings(BaseModel):
    block_trackers: bool = True
    clean_urls: bool = True
    tracker_categories: TrackerCategorySettings = TrackerCategorySettings()

class SecuritySettings(BaseModel):
    features: FeatureFlags = FeatureFlags()
    content_categories: ContentCategorySettings = ContentCategorySettings()
    privacy: PrivacySettings = PrivacySettings()

# ==========================================
# 📥 INPUT MODELS
# ==========================================

class UrlRequest(BaseModel):
    url: str

class HtmlAnalysisRequest(BaseModel):
    url: str
    html: str
    timestamp: Optional[int] = None

class WhitelistRequest(BaseModel):
    domain: str = Field(min_length=1)

class ExportBundle(BaseModel):
    export_date: str
    version: str
    stats: SecurityStats
    settings: SecuritySettings
    whitelist: List[str] = []

class ImportRequest(BaseModel):
    whitelist: Optional[List[str]] = None
    settings: Optional[Dict[str, Any]] = None
    stats: Optional[SecurityStats] = None
