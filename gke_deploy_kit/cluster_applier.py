"""
cluster_applier
---------------

매니페스트를 고정된 의존 순서로 클러스터에 적용한다.

    namespace → database → backend → frontend → certificate → ingress

워크로드 단계(database/backend/frontend)는 적용 후 파드가 Ready 가 될 때까지 기다린다.
한 단계가 실패하면 이후 단계는 실행하지 않으며, 이미 적용된 단계는 되돌리지 않는다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .config import DeployConfig
from .logging_utils import get_logger
from . import kubectl


logger = get_logger(__name__)


@dataclass(frozen=True)
class Stage:
    name: str
    manifests: Tuple[str, ...]
    selector: Optional[str] = None
    deployment: Optional[str] = None
    namespaced: bool = True


STAGES: Tuple[Stage, ...] = (
    Stage("namespace", ("namespace.yaml",), namespaced=False),
    Stage("database", ("mysql-secret.yaml", "mysql-deployment.yaml"), selector="app=mysql"),
    Stage("backend", ("backend-deployment.yaml",), selector="app=backend", deployment="backend"),
    Stage("frontend", ("frontend-deployment.yaml",), selector="app=frontend", deployment="frontend"),
    Stage("certificate", ("managed-certificate.yaml",)),
    Stage("ingress", ("ingress.yaml",)),
)

ALL_STAGES: List[str] = [s.name for s in STAGES]

# 이미지 참조가 들어 있는 매니페스트 (Manifest Patcher 대상)
WORKLOAD_STAGES = ("backend", "frontend")


@dataclass
class ApplyOutcome:
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Optional[str] = None
    not_executed: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failed is None


def manifest_paths(cfg: DeployConfig, stage: Stage) -> List[str]:
    return [os.path.join(cfg.manifest_dir, name) for name in stage.manifests]


def workload_manifest_paths(cfg: DeployConfig, stages: Optional[Iterable[Stage]] = None) -> List[str]:
    paths: List[str] = []
    for stage in (STAGES if stages is None else stages):
        if stage.name in WORKLOAD_STAGES:
            paths += manifest_paths(cfg, stage)
    return paths


def select_stages(only: Optional[Iterable[str]] = None) -> List[Stage]:
    """
    only 가 주어지면 해당 단계만 고르되, 순서는 항상 STAGES 순서를 따른다.
    """
    if not only:
        return list(STAGES)
    requested = set(only)
    unknown = sorted(requested - set(ALL_STAGES))
    if unknown:
        raise ValueError(
            "잘못된 단계 이름이 있습니다: " + ", ".join(unknown)
            + f" (허용: {', '.join(ALL_STAGES)})"
        )
    return [s for s in STAGES if s.name in requested]


def missing_manifests(cfg: DeployConfig, stages: Iterable[Stage]) -> List[str]:
    missing: List[str] = []
    for stage in stages:
        missing += [p for p in manifest_paths(cfg, stage) if not os.path.isfile(p)]
    return missing


def require_manifests(cfg: DeployConfig, stages: Iterable[Stage]) -> None:
    missing = missing_manifests(cfg, stages)
    if missing:
        raise RuntimeError("매니페스트 파일을 찾을 수 없습니다: " + ", ".join(missing))


def readiness_gate(cfg: DeployConfig, stage: Stage) -> Optional[kubectl.ReadinessGate]:
    if stage.selector is None:
        return None
    return kubectl.ReadinessGate(
        selector=stage.selector,
        namespace=cfg.namespace,
        timeout=cfg.readiness_timeout,
    )


def apply_stage(cfg: DeployConfig, stage: Stage, restart: bool = False) -> None:
    namespace = cfg.namespace if stage.namespaced else None
    for path in manifest_paths(cfg, stage):
        kubectl.apply_manifest(path, namespace=namespace)

    if restart and stage.deployment:
        # 같은 태그로 다시 푸시한 이미지는 apply 만으로는 롤아웃되지 않는다.
        kubectl.rollout_restart(cfg.namespace, [stage.deployment])
        kubectl.wait_for_rollout(cfg.namespace, stage.deployment, cfg.readiness_timeout)
        return

    gate = readiness_gate(cfg, stage)
    if gate is not None:
        kubectl.wait_for_ready(gate)


def apply_stages(
    cfg: DeployConfig,
    only: Optional[Iterable[str]] = None,
    restart: bool = False,
) -> ApplyOutcome:
    """
    선택된 단계를 순서대로 적용한다.

    restart=True 이면 backend/frontend 디플로이먼트를 재시작하고 롤아웃 완료를 기다린다.
    첫 실패에서 멈추고, 실패 단계와 실행되지 않은 단계를 ApplyOutcome 에 기록한다.
    """
    selected = select_stages(only)
    require_manifests(cfg, selected)

    outcome = ApplyOutcome()
    selected_names = {s.name for s in selected}

    for stage in STAGES:
        if stage.name not in selected_names:
            outcome.skipped.append(stage.name)
            continue
        if not outcome.ok:
            outcome.not_executed.append(stage.name)
            continue

        logger.info("단계 적용: %s", stage.name)
        try:
            apply_stage(cfg, stage, restart=restart)
        except Exception as e:  # noqa: BLE001
            logger.exception("단계 적용 실패: %s", stage.name)
            outcome.failed = stage.name
            outcome.error = str(e)
            continue

        outcome.executed.append(stage.name)

    return outcome
