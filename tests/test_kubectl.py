from typing import List

import pytest

from gke_deploy_kit.config import DeployConfig
from gke_deploy_kit import kubectl
from gke_deploy_kit.subprocess_utils import RunResult


class _FakeClock:
    """time 모듈 대역: sleep 은 즉시 반환하고 가상 시간만 흐르게 한다."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _cfg(**overrides) -> DeployConfig:  # noqa: ANN003
    values = dict(
        gcp_project_id="test-project",
        domain_name="apartment.example.com",
        static_ip_name="apartment-ip",
    )
    values.update(overrides)
    return DeployConfig(**values)


def test_wait_for_ready_with_no_pods_fails_within_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = _FakeClock()
    monkeypatch.setattr(kubectl, "time", clock)
    monkeypatch.setattr(kubectl, "list_pods", lambda selector, namespace, timeout=60.0: [])

    def unexpected_run(cmd, **kwargs):  # noqa: ANN001, ANN003, ARG001
        raise AssertionError(f"kubectl wait 가 호출되면 안 됩니다: {cmd}")

    monkeypatch.setattr(kubectl, "run_command", unexpected_run)

    started = clock.now
    with pytest.raises(RuntimeError) as excinfo:
        kubectl.wait_for_ready(kubectl.ReadinessGate("app=backend", "apartment", timeout=12.0))

    assert "app=backend" in str(excinfo.value)
    assert clock.now - started <= 12.0
    assert sum(clock.sleeps) <= 12.0


def test_wait_for_ready_passes_remaining_budget(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = _FakeClock()
    monkeypatch.setattr(kubectl, "time", clock)

    answers = iter([[], ["pod/backend-1"]])
    monkeypatch.setattr(kubectl, "list_pods", lambda selector, namespace, timeout=60.0: next(answers))

    calls: List[tuple[list[str], dict]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append((list(cmd), kwargs))
        return RunResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(kubectl, "run_command", fake_run)

    kubectl.wait_for_ready(kubectl.ReadinessGate("app=backend", "apartment", timeout=300.0))

    cmd, kwargs = calls[0]
    assert cmd[:4] == ["kubectl", "wait", "--for=condition=ready", "pod"]
    assert "--timeout=295s" in cmd
    assert kwargs["timeout"] == pytest.approx(295.0)


def test_ensure_cluster_connection_fails_when_cluster_info_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        kubectl,
        "run_command",
        lambda cmd, **kwargs: RunResult(returncode=1, stdout="", stderr="connection refused"),
    )

    with pytest.raises(RuntimeError):
        kubectl.ensure_cluster_connection(_cfg())


def test_ensure_cluster_connection_fetches_credentials_first(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[list[str]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003, ARG001
        calls.append(list(cmd))
        return RunResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(kubectl, "run_command", fake_run)

    kubectl.ensure_cluster_connection(_cfg(gke_cluster_name="prod", gke_location="asia-northeast3"))

    assert calls[0][:4] == ["gcloud", "container", "clusters", "get-credentials"]
    assert "--location=asia-northeast3" in calls[0]
    assert calls[1][:2] == ["kubectl", "cluster-info"]


def test_get_jsonpath_returns_none_for_missing_resource(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        kubectl,
        "run_command",
        lambda cmd, **kwargs: RunResult(returncode=1, stdout="", stderr="NotFound"),
    )

    assert kubectl.get_jsonpath("ingress", "apartment-ingress", "apartment", "{.status}") is None


def test_list_pods_parses_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        kubectl,
        "run_command",
        lambda cmd, **kwargs: RunResult(returncode=0, stdout="pod/a\n\npod/b\n", stderr=""),
    )

    assert kubectl.list_pods("app=frontend", "apartment") == ["pod/a", "pod/b"]


def test_slow_pod_listing_cannot_overrun_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = _FakeClock()
    monkeypatch.setattr(kubectl, "time", clock)
    list_timeouts: List[float] = []

    def slow_get_pods(cmd, **kwargs):  # noqa: ANN001, ANN003
        # API 서버가 느려서 한 번 조회에 10초가 걸리지만, 넘겨받은 timeout 을 넘지는 않는다.
        assert cmd[:3] == ["kubectl", "get", "pods"]
        list_timeouts.append(kwargs["timeout"])
        clock.now += min(10.0, kwargs["timeout"])
        return RunResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(kubectl, "run_command", slow_get_pods)

    started = clock.now
    with pytest.raises(RuntimeError):
        kubectl.wait_for_ready(kubectl.ReadinessGate("app=backend", "apartment", timeout=12.0))

    assert clock.now - started <= 12.0
    assert list_timeouts[0] == pytest.approx(12.0)
    assert all(t <= 12.0 for t in list_timeouts)


def test_list_pods_passes_request_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[tuple[list[str], dict]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append((list(cmd), kwargs))
        return RunResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(kubectl, "run_command", fake_run)

    kubectl.list_pods("app=mysql", "apartment", timeout=7.5)

    cmd, kwargs = calls[0]
    assert "--request-timeout=7s" in cmd
    assert kwargs["timeout"] == 7.5
