"""
gcp_project
-----------

gcloud 에 설정된 현재 프로젝트를 감지하는 모듈.
"""

from __future__ import annotations

from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def detect_project_id() -> str:
    """
    GCP_PROJECT_ID / --project-id 가 없을 때 `gcloud config get-value project` 로 감지한다.
    """
    result = run_command(
        ["gcloud", "config", "get-value", "project", "--quiet"],
        timeout=60.0,
        show_progress=False,
    )
    project = result.stdout.strip()
    # 프로젝트가 설정되지 않은 경우 gcloud 는 "(unset)" 또는 빈 문자열을 출력한다.
    if not project or project == "(unset)":
        raise ValueError(
            "GCP 프로젝트를 감지하지 못했습니다. GCP_PROJECT_ID 환경변수나 --project-id 옵션을 지정하세요."
        )
    logger.info("gcloud 설정에서 프로젝트를 감지했습니다: %s", project)
    return project
