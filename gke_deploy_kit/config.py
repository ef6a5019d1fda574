from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.deploy"]

BUILD_MODES = ("local_docker", "cloud_build")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_float(name: str, default: float, invalid: List[str], allow_zero: bool = True) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        invalid.append(f"{name}={raw!r}")
        return default
    if value < 0 or (value == 0 and not allow_zero):
        invalid.append(f"{name}={raw!r}")
        return default
    return value


@dataclass(frozen=True)
class DeployConfig:
    """
    배포 대상(Deployment Target)과 배포 설정.

    시작 시 한 번 결정되며 이후 변경하지 않는다.
    CLI 옵션으로 덮어쓸 때는 dataclasses.replace 로 새 인스턴스를 만든다.
    """

    # 배포 대상
    gcp_project_id: str
    domain_name: str
    static_ip_name: str
    namespace: str = "apartment"

    # 클러스터 접속 (선택)
    gke_cluster_name: Optional[str] = None
    gke_location: Optional[str] = None

    # 이미지
    registry_host: str = "gcr.io"
    backend_image_name: str = "apartment-backend"
    frontend_image_name: str = "apartment-frontend"
    backend_source_dir: str = "backend"
    frontend_source_dir: str = "frontend"
    image_tag: str = "prod"
    build_mode: str = "local_docker"
    build_images: bool = True

    # 매니페스트 / 상태 조회
    manifest_dir: str = "k8s"
    ingress_name: str = "apartment-ingress"
    certificate_name: str = "apartment-cert"

    # 대기 시간(초)
    readiness_timeout: float = 300.0
    status_delay: float = 30.0

    @property
    def https_url(self) -> str:
        return f"https://{self.domain_name}"

    @classmethod
    def from_env(cls, project_id: Optional[str] = None) -> "DeployConfig":
        """
        환경변수에서 설정을 읽는다.

        project_id 인자가 주어지면 GCP_PROJECT_ID 보다 우선한다.
        둘 다 없으면 gcloud 의 현재 프로젝트를 자동 감지한다.
        """
        missing: List[str] = []
        invalid: List[str] = []

        def req(name: str) -> str:
            val = os.getenv(name)
            if not val:
                missing.append(name)
            return val or ""

        domain_name = req("DOMAIN_NAME")
        static_ip_name = req("STATIC_IP_NAME")

        build_mode = os.getenv("BUILD_MODE", "local_docker").strip().lower()
        if build_mode not in BUILD_MODES:
            invalid.append(f"BUILD_MODE={build_mode!r} (local_docker | cloud_build)")

        readiness_timeout = _get_float("READINESS_TIMEOUT_SECONDS", 300.0, invalid, allow_zero=False)
        status_delay = _get_float("STATUS_DELAY_SECONDS", 30.0, invalid)

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )
        if invalid:
            raise ValueError("잘못된 환경변수 값이 있습니다: " + ", ".join(invalid))

        resolved_project = project_id or os.getenv("GCP_PROJECT_ID")
        if not resolved_project:
            from .gcp_project import detect_project_id

            resolved_project = detect_project_id()

        return cls(
            gcp_project_id=resolved_project,
            domain_name=domain_name,
            static_ip_name=static_ip_name,
            namespace=os.getenv("K8S_NAMESPACE", "apartment"),
            gke_cluster_name=os.getenv("GKE_CLUSTER_NAME") or None,
            gke_location=os.getenv("GKE_LOCATION") or None,
            registry_host=os.getenv("REGISTRY_HOST", "gcr.io"),
            backend_image_name=os.getenv("BACKEND_IMAGE_NAME", "apartment-backend"),
            frontend_image_name=os.getenv("FRONTEND_IMAGE_NAME", "apartment-frontend"),
            backend_source_dir=os.getenv("BACKEND_SOURCE_DIR", "backend"),
            frontend_source_dir=os.getenv("FRONTEND_SOURCE_DIR", "frontend"),
            image_tag=os.getenv("IMAGE_TAG", "prod"),
            build_mode=build_mode,
            build_images=_get_bool("BUILD_IMAGES", True),
            manifest_dir=os.getenv("MANIFEST_DIR", "k8s"),
            ingress_name=os.getenv("INGRESS_NAME", "apartment-ingress"),
            certificate_name=os.getenv("CERTIFICATE_NAME", "apartment-cert"),
            readiness_timeout=readiness_timeout,
            status_delay=status_delay,
        )
