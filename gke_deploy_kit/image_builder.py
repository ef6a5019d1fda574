"""
image_builder
-------------

프론트엔드/백엔드 컨테이너 이미지를 빌드하고 레지스트리에 푸시하는 모듈.

빌드 방식은 두 가지다.
- local_docker: 로컬 docker build + docker push
- cloud_build : gcloud builds submit (원격 빌드)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)

BUILD_TIMEOUT_SECONDS = 1800.0


@dataclass(frozen=True)
class ImageReference:
    registry_host: str
    project_path: str
    image_name: str
    tag: str

    def __str__(self) -> str:
        return f"{self.registry_host}/{self.project_path}/{self.image_name}:{self.tag}"


@dataclass(frozen=True)
class ImageTarget:
    service: str
    reference: ImageReference
    context_dir: str


def image_targets(
    cfg: DeployConfig,
    tag: Optional[str] = None,
    services: Optional[Iterable[str]] = None,
) -> List[ImageTarget]:
    """
    빌드 대상 이미지(backend, frontend)와 그 결정적 참조를 반환한다.
    services 가 주어지면 해당 서비스만 고른다.
    """
    resolved_tag = tag or cfg.image_tag

    def ref(name: str) -> ImageReference:
        return ImageReference(cfg.registry_host, cfg.gcp_project_id, name, resolved_tag)

    targets = [
        ImageTarget("backend", ref(cfg.backend_image_name), cfg.backend_source_dir),
        ImageTarget("frontend", ref(cfg.frontend_image_name), cfg.frontend_source_dir),
    ]
    if services is None:
        return targets
    wanted = set(services)
    return [t for t in targets if t.service in wanted]


def image_references(
    cfg: DeployConfig,
    tag: Optional[str] = None,
    services: Optional[Iterable[str]] = None,
) -> List[ImageReference]:
    return [t.reference for t in image_targets(cfg, tag, services)]


def configure_docker_auth(cfg: DeployConfig) -> None:
    """
    로컬 docker 가 레지스트리에 푸시할 수 있도록 gcloud credential helper 를 등록한다.
    """
    run_command(
        ["gcloud", "auth", "configure-docker", cfg.registry_host, "--quiet"],
        timeout=120.0,
    )


def build_and_push_image(cfg: DeployConfig, target: ImageTarget) -> ImageReference:
    image_url = str(target.reference)
    mode = cfg.build_mode.lower()
    logger.info("이미지 빌드 (%s, mode=%s): %s", target.service, mode, image_url)

    if mode == "local_docker":
        run_command(
            ["docker", "build", "-t", image_url, target.context_dir],
            timeout=BUILD_TIMEOUT_SECONDS,
            stream_output=True,
            spinner_message=f"{target.service} 이미지 빌드 중",
        )
        run_command(
            ["docker", "push", image_url],
            timeout=BUILD_TIMEOUT_SECONDS,
            stream_output=True,
            spinner_message=f"{target.service} 이미지 푸시 중",
        )
    elif mode == "cloud_build":
        run_command(
            [
                "gcloud",
                "builds",
                "submit",
                target.context_dir,
                f"--tag={image_url}",
                f"--project={cfg.gcp_project_id}",
            ],
            timeout=BUILD_TIMEOUT_SECONDS,
            stream_output=True,
            spinner_message=f"{target.service} 원격 빌드 중",
        )
    else:
        raise ValueError(
            f"알 수 없는 BUILD_MODE 값입니다: {cfg.build_mode!r} (local_docker | cloud_build 중 하나)"
        )

    logger.info("이미지 빌드/푸시 완료: %s", image_url)
    return target.reference


def build_and_push_images(
    cfg: DeployConfig,
    tag: Optional[str] = None,
    services: Optional[Iterable[str]] = None,
) -> List[ImageReference]:
    """
    backend, frontend 순서로 빌드/푸시한다. (services 가 주어지면 그 서비스만)
    하나라도 실패하면 즉시 예외가 전파되어 나머지는 빌드하지 않는다.
    """
    targets = image_targets(cfg, tag, services)
    if not targets:
        return []
    if cfg.build_mode.lower() == "local_docker":
        configure_docker_auth(cfg)
    return [build_and_push_image(cfg, t) for t in targets]
