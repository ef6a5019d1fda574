from __future__ import annotations

import os
from typing import Iterable, List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from . import (
    cluster_applier,
    gcp_network,
    image_builder,
    kubectl,
    manifest_patcher,
    status_reporter,
)


logger = get_logger(__name__)


def _list_section(lines: List[str], title: str, items: Iterable[str]) -> None:
    lines.append(f"## {title}")
    items = list(items)
    if items:
        for s in items:
            lines.append(f"- {s}")
    else:
        lines.append("- (none)")


def check_preconditions(cfg: DeployConfig, only: Optional[Iterable[str]] = None) -> str:
    """
    클러스터를 변경하기 전에 반드시 통과해야 하는 조건을 확인하고 고정 IP 주소를 반환한다.

    1) 고정 IP 존재  2) 클러스터 연결  3) 매니페스트 파일 존재
    하나라도 실패하면 RuntimeError.
    """
    address = gcp_network.require_static_address(cfg)
    kubectl.ensure_cluster_connection(cfg)
    cluster_applier.require_manifests(cfg, cluster_applier.select_stages(only))
    return address


def plan_all(cfg: DeployConfig) -> str:
    """
    현재 설정으로 무엇이 어떤 순서로 배포되는지 요약한다.
    로컬 매니페스트만 읽으며 클러스터/레지스트리는 변경하지 않는다.
    (GCP_PROJECT_ID 가 없으면 설정 로드 단계에서 gcloud 로 프로젝트를 조회한다)
    """
    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- project: {cfg.gcp_project_id}")
    lines.append(f"- domain: {cfg.domain_name}")
    lines.append(f"- namespace: {cfg.namespace}")
    lines.append(f"- static ip: {cfg.static_ip_name}")
    lines.append("")

    lines.append("## Images")
    lines.append(f"- build: {'ENABLED' if cfg.build_images else 'SKIPPED'} (mode={cfg.build_mode})")
    for target in image_builder.image_targets(cfg):
        lines.append(f"- {target.service}: {target.reference} (context={target.context_dir})")
    lines.append("")

    lines.append("## Stages")
    for stage in cluster_applier.STAGES:
        paths = cluster_applier.manifest_paths(cfg, stage)
        gate = f" (wait: {stage.selector}, {cfg.readiness_timeout:.0f}s)" if stage.selector else ""
        lines.append(f"- {stage.name}: {', '.join(paths)}{gate}")
    lines.append("")

    lines.append("## Current image references")
    for path in cluster_applier.workload_manifest_paths(cfg):
        if not os.path.isfile(path):
            lines.append(f"- {path}: (파일 없음)")
            continue
        refs = manifest_patcher.find_image_references(path)
        lines.append(f"- {path}: {', '.join(refs) if refs else '(image 없음)'}")

    return "\n".join(lines)


def check_all(cfg: DeployConfig) -> tuple[str, bool]:
    """
    사전 조건을 하나씩 점검만 한다. (리소스 생성/변경 없음)

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 배포를 막는 이슈가 있는지 여부
    """
    lines: List[str] = []
    issues: List[str] = []

    lines.append("# Deploy pre-check")
    lines.append(f"- project: {cfg.gcp_project_id}")
    lines.append("")

    lines.append("## Static address")
    address = gcp_network.describe_static_address(cfg)
    if address:
        lines.append(f"- {cfg.static_ip_name}: {address}")
    else:
        msg = f"고정 IP 없음: {cfg.static_ip_name}"
        lines.append(f"- {msg}")
        issues.append(msg)
    lines.append("")

    lines.append("## Cluster")
    try:
        kubectl.ensure_cluster_connection(cfg)
        lines.append("- 연결됨")
    except RuntimeError as e:
        lines.append(f"- {e}")
        issues.append(str(e))
    lines.append("")

    lines.append("## Manifests")
    missing = cluster_applier.missing_manifests(cfg, cluster_applier.STAGES)
    for path in missing:
        msg = f"파일 없음: {path}"
        lines.append(f"- {msg}")
        issues.append(msg)
    if not missing:
        lines.append(f"- 모든 매니페스트 존재 ({cfg.manifest_dir})")
    lines.append("")

    lines.append("## Summary")
    if issues:
        lines.append(f"- 상태: 이슈 {len(issues)}건. 배포 전에 해결해야 합니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음 (배포 가능 상태로 보입니다)")

    return "\n".join(lines), bool(issues)


def deploy_all(
    cfg: DeployConfig,
    only_stages: Optional[Iterable[str]] = None,
    restart: bool = False,
    strict_patch: bool = False,
) -> tuple[str, bool]:
    """
    사전 조건 확인 → 이미지 빌드/푸시 → 매니페스트 갱신 → 단계별 적용 → 상태 보고.

    사전 조건/빌드/패치 실패는 예외로 즉시 전파된다. (클러스터는 아직 변경되지 않음)
    단계 적용이 실패하면 그 지점에서 멈추고 has_failures=True 로 요약을 돌려준다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_failures: 실패한 단계가 있는지 여부
    """
    only = list(only_stages) if only_stages else None
    static_address = check_preconditions(cfg, only)

    # 선택된 단계에 backend/frontend 가 없으면 빌드와 패치를 하지 않는다.
    selected = cluster_applier.select_stages(only)
    workloads = [s for s in selected if s.name in cluster_applier.WORKLOAD_STAGES]
    services = [s.name for s in workloads]

    if not workloads:
        logger.info("선택된 단계에 backend/frontend 가 없어 이미지 빌드와 매니페스트 갱신을 건너뜁니다.")
        images = []
    elif cfg.build_images:
        images = image_builder.build_and_push_images(cfg, services=services)
    else:
        logger.info("이미지 빌드를 건너뜁니다. (BUILD_IMAGES=false)")
        images = image_builder.image_references(cfg, services=services)

    patch_results = manifest_patcher.patch_manifests(
        cluster_applier.workload_manifest_paths(cfg, workloads), images, strict=strict_patch
    )

    outcome = cluster_applier.apply_stages(cfg, only=only, restart=restart)

    lines: List[str] = []
    lines.append("# Deploy summary")
    lines.append(f"- project: {cfg.gcp_project_id}")
    lines.append(f"- namespace: {cfg.namespace}")
    lines.append("")

    _list_section(lines, "Images", (str(img) for img in images))
    lines.append("")
    _list_section(
        lines,
        "Patched manifests",
        (f"{r.path}: {'updated' if r.changed else 'unchanged'} ({r.matched} match)" for r in patch_results),
    )
    lines.append("")
    _list_section(lines, "Applied stages", outcome.executed)
    lines.append("")
    _list_section(lines, "Skipped stages", outcome.skipped)

    if not outcome.ok:
        lines.append("")
        _list_section(lines, "Failed stage", [f"{outcome.failed}: {outcome.error}"])
        lines.append("")
        _list_section(lines, "Not executed", outcome.not_executed)
        return "\n".join(lines), True

    report = status_reporter.collect_status(cfg, static_address=static_address)
    lines.append("")
    lines.append(report.render())
    return "\n".join(lines), False
