from pathlib import Path
from typing import List

import pytest

from gke_deploy_kit.config import DeployConfig
from gke_deploy_kit import cluster_applier as ca


def _manifest_dir(tmp_path: Path) -> Path:
    for stage in ca.STAGES:
        for name in stage.manifests:
            (tmp_path / name).write_text(f"# {stage.name}\n", encoding="utf-8")
    return tmp_path


def _cfg(manifest_dir: Path) -> DeployConfig:
    return DeployConfig(
        gcp_project_id="test-project",
        domain_name="apartment.example.com",
        static_ip_name="apartment-ip",
        manifest_dir=str(manifest_dir),
        readiness_timeout=120.0,
    )


@pytest.fixture
def events(monkeypatch: pytest.MonkeyPatch) -> List[tuple]:
    recorded: List[tuple] = []
    monkeypatch.setattr(
        ca.kubectl,
        "apply_manifest",
        lambda path, namespace=None: recorded.append(("apply", Path(path).name, namespace)),
    )
    monkeypatch.setattr(
        ca.kubectl,
        "wait_for_ready",
        lambda gate: recorded.append(("wait", gate.selector, gate.timeout)),
    )
    return recorded


def test_stage_order_is_fixed() -> None:
    assert ca.ALL_STAGES == ["namespace", "database", "backend", "frontend", "certificate", "ingress"]


def test_apply_stages_applies_in_order_and_waits_on_workloads(tmp_path: Path, events: List[tuple]) -> None:
    cfg = _cfg(_manifest_dir(tmp_path))

    outcome = ca.apply_stages(cfg)

    assert outcome.ok
    assert outcome.executed == ca.ALL_STAGES
    assert events[0] == ("apply", "namespace.yaml", None)
    waits = [e[1] for e in events if e[0] == "wait"]
    assert waits == ["app=mysql", "app=backend", "app=frontend"]
    # 각 워크로드의 wait 는 다음 단계 apply 보다 먼저 일어나야 한다.
    assert events.index(("wait", "app=backend", 120.0)) < events.index(("apply", "frontend-deployment.yaml", "apartment"))
    assert events[-1] == ("apply", "ingress.yaml", "apartment")


def test_apply_stops_at_first_failure(tmp_path: Path, events: List[tuple], monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = _cfg(_manifest_dir(tmp_path))

    def failing_wait(gate):  # noqa: ANN001
        if gate.selector == "app=backend":
            raise RuntimeError("timed out")
        events.append(("wait", gate.selector, gate.timeout))

    monkeypatch.setattr(ca.kubectl, "wait_for_ready", failing_wait)

    outcome = ca.apply_stages(cfg)

    assert not outcome.ok
    assert outcome.failed == "backend"
    assert outcome.executed == ["namespace", "database"]
    assert outcome.not_executed == ["frontend", "certificate", "ingress"]
    assert ("apply", "frontend-deployment.yaml", "apartment") not in events


def test_only_keeps_fixed_order(tmp_path: Path, events: List[tuple]) -> None:
    cfg = _cfg(_manifest_dir(tmp_path))

    outcome = ca.apply_stages(cfg, only=["ingress", "backend"])

    assert outcome.executed == ["backend", "ingress"]
    assert outcome.skipped == ["namespace", "database", "frontend", "certificate"]


def test_unknown_stage_raises() -> None:
    with pytest.raises(ValueError):
        ca.select_stages(["cache"])


def test_missing_manifest_fails_before_any_apply(tmp_path: Path, events: List[tuple]) -> None:
    manifest_dir = _manifest_dir(tmp_path)
    (manifest_dir / "ingress.yaml").unlink()

    with pytest.raises(RuntimeError) as excinfo:
        ca.apply_stages(_cfg(manifest_dir))

    assert "ingress.yaml" in str(excinfo.value)
    assert events == []


def test_restart_uses_rollout_for_app_deployments(
    tmp_path: Path, events: List[tuple], monkeypatch: pytest.MonkeyPatch
) -> None:
    cfg = _cfg(_manifest_dir(tmp_path))
    monkeypatch.setattr(
        ca.kubectl,
        "rollout_restart",
        lambda namespace, deployments: events.append(("restart", tuple(deployments))),
    )
    monkeypatch.setattr(
        ca.kubectl,
        "wait_for_rollout",
        lambda namespace, deployment, timeout: events.append(("rollout", deployment)),
    )

    outcome = ca.apply_stages(cfg, only=["database", "backend", "frontend"], restart=True)

    assert outcome.ok
    assert ("restart", ("backend",)) in events
    assert ("rollout", "frontend") in events
    waits = [e[1] for e in events if e[0] == "wait"]
    assert waits == ["app=mysql"]
