import json
import shutil
from unittest.mock import MagicMock

import pytest
import requests

from threatlens.config import settings
from threatlens.core.phishing_detector import PhishingDetector
from threatlens.core.reputation import DATASET_FILES, PACKAGE_DATA_DIR, ReputationLoader
from threatlens.services.security_core import SecurityCore

API = settings.API_PREFIX

URGENT_TEXT = "act now, your account will be suspended"


@pytest.fixture
def data_dir(tmp_path):
    for filename in DATASET_FILES.values():
        shutil.copy(PACKAGE_DATA_DIR / filename, tmp_path / filename)
    return tmp_path


def edit_dataset(directory, filename, change):
    path = directory / filename
    raw = json.loads(path.read_text(encoding="utf-8"))
    change(raw)
    path.write_text(json.dumps(raw), encoding="utf-8")


def offline_loader(**kwargs):
    loader = ReputationLoader(**kwargs)
    loader.http_session = MagicMock()
    loader.http_session.get.side_effect = requests.ConnectionError("network unreachable")
    return loader


# ==========================================
# Pattern rules
# ==========================================

def test_invalid_regex_skipped_with_diagnostic(data_dir):
    edit_dataset(data_dir, "phishing_patterns.json", lambda raw: raw["urgencyPatterns"].append(
        {"pattern": "(unclosed", "category": "urgency", "score": 10}
    ))

    data = ReputationLoader(data_dir=str(data_dir)).load()

    assert data.readiness["phishing_patterns"]
    assert [(d.dataset, d.pattern) for d in data.diagnostics] == [("phishing_patterns", "(unclosed")]
    assert PhishingDetector(data).detect_urgency_language(URGENT_TEXT)["score"] == 25


def test_rule_missing_score_does_not_drop_dataset(data_dir):
    edit_dataset(data_dir, "phishing_patterns.json", lambda raw: raw["urgencyPatterns"].extend([
        {"pattern": "x", "category": "urgency"},
        {"pattern": "y", "category": "urgency", "score": "high"},
    ]))

    data = ReputationLoader(data_dir=str(data_dir)).load()

    assert data.readiness["phishing_patterns"]
    assert data.is_ready
    assert [d.pattern for d in data.diagnostics] == ["x", "y"]
    assert PhishingDetector(data).detect_urgency_language(URGENT_TEXT)["score"] == 25


def test_malformed_malicious_rule_skipped(data_dir):
    edit_dataset(data_dir, "malicious_domains.json", lambda raw: raw.setdefault("patterns", []).append(
        {"pattern": "free-.*-prize"}
    ))

    data = ReputationLoader(data_dir=str(data_dir)).load()

    assert data.readiness["malicious_domains"]
    assert "free-.*-prize" not in [p.source for p in data.malicious_patterns]
    assert data.diagnostics[0].dataset == "malicious_domains"


# ==========================================
# Sources
# ==========================================

def test_data_dir_takes_precedence_over_package_data(tmp_path):
    brands = {"brands": [{"name": "Acme", "keywords": ["acme"], "legitimateDomains": ["acme.example"]}]}
    (tmp_path / "brand_database.json").write_text(json.dumps(brands), encoding="utf-8")

    data = ReputationLoader(data_dir=str(tmp_path)).load()

    assert [b.name for b in data.brands] == ["Acme"]
    # everything else still comes from the bundled copies
    assert data.is_ready


def test_remote_failure_falls_back_to_local(data_dir):
    loader = offline_loader(data_dir=str(data_dir), remote_url="https://mirror.example/data/", timeout=2.0)

    data = loader.load()

    assert data.is_ready
    assert loader.http_session.get.call_count == len(DATASET_FILES)
    loader.http_session.get.assert_any_call("https://mirror.example/data/brand_database.json", timeout=2.0)


def test_remote_copy_used_when_available():
    remote_brands = {"brands": [{"name": "Remote Bank", "keywords": ["remotebank"], "priority": "high"}]}

    def fake_get(url, timeout):
        if url.endswith("/brand_database.json"):
            response = MagicMock()
            response.json.return_value = remote_brands
            return response
        raise requests.Timeout("slow mirror")

    loader = ReputationLoader(remote_url="https://mirror.example/data")
    loader.http_session = MagicMock()
    loader.http_session.get.side_effect = fake_get

    data = loader.load()

    assert [b.name for b in data.brands] == ["Remote Bank"]
    assert data.brands[0].priority_multiplier == 1.5
    assert data.is_ready


def test_no_remote_request_without_url(data_dir):
    loader = ReputationLoader(data_dir=str(data_dir))
    loader.http_session = MagicMock()

    loader.load()
    loader.http_session.get.assert_not_called()


# ==========================================
# Readiness
# ==========================================

def test_invalid_json_marks_dataset_not_ready(data_dir):
    (data_dir / "brand_database.json").write_text("{not json", encoding="utf-8")

    data = ReputationLoader(data_dir=str(data_dir)).load()

    assert not data.readiness["brands"]
    assert data.brands is None
    assert not data.is_ready


def test_missing_required_key_marks_dataset_not_ready(data_dir):
    edit_dataset(data_dir, "tld_risk_scores.json", lambda raw: raw.pop("highRisk"))

    data = ReputationLoader(data_dir=str(data_dir)).load()

    assert not data.readiness["tld_risk"]
    assert data.readiness["brands"]


def test_health_degraded_when_dataset_missing(client, data_dir, storage, clock):
    from threatlens.main import app

    edit_dataset(data_dir, "tracking_params.json", lambda raw: raw.pop("parameters"))
    degraded = ReputationLoader(data_dir=str(data_dir)).load()
    app.state.core = SecurityCore(degraded, storage, clock=clock)

    body = client.get(f"{API}/health").json()
    assert body["status"] == "degraded"
    assert body["ready"] is False
    assert body["readiness"]["tracking_params"] is False

    # detectors keep working on what did load
    assert client.post(f"{API}/analyze/url", json={"url": "http://paypai.tk/login"}).json()["recommendation"] == "BLOCK"
