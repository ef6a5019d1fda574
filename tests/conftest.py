"""
pytest 설정:

site-packages 에 설치된 다른 버전의 gke_deploy_kit 이 먼저 import 되지 않도록
repo root 를 sys.path 최상단에 고정한다.
"""

from __future__ import annotations

import os
import sys

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_DEPLOY_ENV_KEYS = (
    "GCP_PROJECT_ID",
    "DOMAIN_NAME",
    "STATIC_IP_NAME",
    "K8S_NAMESPACE",
    "GKE_CLUSTER_NAME",
    "GKE_LOCATION",
    "REGISTRY_HOST",
    "BACKEND_IMAGE_NAME",
    "FRONTEND_IMAGE_NAME",
    "BACKEND_SOURCE_DIR",
    "FRONTEND_SOURCE_DIR",
    "IMAGE_TAG",
    "BUILD_MODE",
    "BUILD_IMAGES",
    "MANIFEST_DIR",
    "INGRESS_NAME",
    "CERTIFICATE_NAME",
    "READINESS_TIMEOUT_SECONDS",
    "STATUS_DELAY_SECONDS",
    "CLI_SHOW_PROGRESS",
    "CLI_PROGRESS_IDLE_SECONDS",
    "CLI_PROGRESS_STYLE",
    "CLI_PROGRESS_INTERVAL_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_deploy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # 개발자 셸에 남아 있는 배포 설정이 테스트에 섞이지 않게 한다.
    for key in _DEPLOY_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
