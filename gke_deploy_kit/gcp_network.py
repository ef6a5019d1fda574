"""
gcp_network
-----------

미리 예약한 전역 고정 IP(static address) 조회를 담당하는 모듈.
DNS 와 관리형 인증서가 이 주소를 기준으로 설정되므로,
주소가 없으면 클러스터를 변경하기 전에 배포를 중단해야 한다.
"""

from __future__ import annotations

from typing import Optional

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def describe_static_address(cfg: DeployConfig) -> Optional[str]:
    """
    고정 IP 주소 값을 반환한다. 리소스가 없으면 None.
    """
    cmd = [
        "gcloud",
        "compute",
        "addresses",
        "describe",
        cfg.static_ip_name,
        "--global",
        f"--project={cfg.gcp_project_id}",
        "--format=value(address)",
        "--quiet",
    ]
    result = run_command(cmd, timeout=60.0, check=False)
    if not result.ok:
        logger.debug("고정 IP 조회 실패 (exit=%s): %s", result.returncode, result.stderr.strip())
        return None
    address = result.stdout.strip()
    return address or None


def require_static_address(cfg: DeployConfig) -> str:
    """
    고정 IP 가 존재하는지 확인하고 주소를 반환한다. 없으면 RuntimeError.
    """
    address = describe_static_address(cfg)
    if address is None:
        raise RuntimeError(
            f"고정 IP '{cfg.static_ip_name}' 을(를) 프로젝트 {cfg.gcp_project_id} 에서 찾을 수 없습니다. "
            f"먼저 `gcloud compute addresses create {cfg.static_ip_name} --global` 로 예약하세요."
        )
    logger.info("고정 IP 확인: %s = %s", cfg.static_ip_name, address)
    return address
