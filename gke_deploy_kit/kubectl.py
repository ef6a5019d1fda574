"""
kubectl
-------

kubectl / gcloud container 호출을 감싸는 클러스터 클라이언트.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)

POD_POLL_INTERVAL_SECONDS = 5.0
POD_LIST_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class ReadinessGate:
    selector: str
    namespace: str
    timeout: float = 300.0


def ensure_cluster_connection(cfg: DeployConfig) -> None:
    """
    클러스터 접속 가능 여부를 확인한다. 접속할 수 없으면 RuntimeError.

    GKE_CLUSTER_NAME/GKE_LOCATION 이 설정되어 있으면 먼저 kubeconfig 를 갱신한다.
    """
    if cfg.gke_cluster_name and cfg.gke_location:
        run_command(
            [
                "gcloud",
                "container",
                "clusters",
                "get-credentials",
                cfg.gke_cluster_name,
                f"--location={cfg.gke_location}",
                f"--project={cfg.gcp_project_id}",
            ],
            timeout=120.0,
        )

    result = run_command(
        ["kubectl", "cluster-info", "--request-timeout=10s"],
        timeout=60.0,
        check=False,
    )
    if not result.ok:
        raise RuntimeError(
            "쿠버네티스 클러스터에 연결할 수 없습니다. "
            "`gcloud container clusters get-credentials` 로 kubeconfig 를 설정했는지 확인하세요."
        )
    logger.info("클러스터 연결 확인 완료")


def apply_manifest(path: str, namespace: Optional[str] = None) -> None:
    cmd = ["kubectl", "apply", "-f", path]
    if namespace:
        cmd += ["-n", namespace]
    run_command(cmd, timeout=300.0)


def list_pods(selector: str, namespace: str, timeout: float = POD_LIST_TIMEOUT_SECONDS) -> List[str]:
    request_timeout = max(int(math.floor(timeout)), 1)
    result = run_command(
        [
            "kubectl",
            "get",
            "pods",
            "-l",
            selector,
            "-n",
            namespace,
            "-o",
            "name",
            f"--request-timeout={request_timeout}s",
        ],
        timeout=timeout,
        show_progress=False,
    )
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def wait_for_ready(gate: ReadinessGate) -> None:
    """
    selector 에 매칭되는 파드가 모두 Ready 가 될 때까지 블록한다.

    파드가 아직 생성되지 않았으면 생길 때까지 기다린 뒤 `kubectl wait` 를 호출한다.
    전체 대기 시간은 gate.timeout 을 넘지 않으며, 넘으면 RuntimeError.
    """
    deadline = time.monotonic() + gate.timeout
    logger.info(
        "Ready 대기: selector=%s namespace=%s timeout=%ss",
        gate.selector,
        gate.namespace,
        gate.timeout,
    )

    def _no_pods_error() -> RuntimeError:
        return RuntimeError(
            f"{gate.timeout}초 동안 selector '{gate.selector}' 에 매칭되는 파드가 생성되지 않았습니다 "
            f"(namespace={gate.namespace})"
        )

    # 조회 한 번도 남은 예산을 넘지 않도록 timeout 을 줄여서 넘긴다.
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise _no_pods_error()
        if list_pods(gate.selector, gate.namespace, timeout=min(POD_LIST_TIMEOUT_SECONDS, remaining)):
            break
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise _no_pods_error()
        logger.debug("파드 생성 대기 중: %s", gate.selector)
        time.sleep(min(POD_POLL_INTERVAL_SECONDS, remaining))

    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise RuntimeError(f"Ready 대기 시간 {gate.timeout}초를 초과했습니다: {gate.selector}")

    wait_seconds = max(int(math.floor(remaining)), 1)
    run_command(
        [
            "kubectl",
            "wait",
            "--for=condition=ready",
            "pod",
            "-l",
            gate.selector,
            "-n",
            gate.namespace,
            f"--timeout={wait_seconds}s",
        ],
        timeout=remaining,
        spinner_message=f"{gate.selector} Ready 대기 중",
    )
    logger.info("Ready 완료: %s", gate.selector)


def rollout_restart(namespace: str, deployments: Sequence[str]) -> None:
    """
    태그가 같은 이미지를 다시 푸시한 경우 새 이미지를 받도록 디플로이먼트를 재시작한다.
    """
    for name in deployments:
        run_command(
            ["kubectl", "rollout", "restart", f"deployment/{name}", "-n", namespace],
            timeout=120.0,
        )


def wait_for_rollout(namespace: str, deployment: str, timeout: float) -> None:
    wait_seconds = max(int(timeout), 1)
    run_command(
        [
            "kubectl",
            "rollout",
            "status",
            f"deployment/{deployment}",
            "-n",
            namespace,
            f"--timeout={wait_seconds}s",
        ],
        timeout=timeout + 10.0,
        spinner_message=f"deployment/{deployment} 롤아웃 대기 중",
    )


def get_jsonpath(kind: str, name: str, namespace: str, jsonpath: str) -> Optional[str]:
    """
    리소스의 jsonpath 값을 읽는다. 리소스가 없거나 값이 비어 있으면 None.
    """
    result = run_command(
        ["kubectl", "get", kind, name, "-n", namespace, "-o", f"jsonpath={jsonpath}"],
        timeout=60.0,
        check=False,
        show_progress=False,
    )
    if not result.ok:
        logger.debug("%s/%s 조회 실패: %s", kind, name, result.stderr.strip())
        return None
    return result.stdout.strip() or None
