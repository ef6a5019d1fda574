"""
status_reporter
---------------

배포가 끝난 뒤 Ingress 외부 주소와 관리형 인증서 상태를 한 번 조회해 요약한다.
인증서가 아직 프로비저닝 중이어도 오류로 보지 않는다.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional

from .config import DeployConfig
from .logging_utils import get_logger
from . import gcp_network, kubectl


logger = get_logger(__name__)

INGRESS_IP_JSONPATH = "{.status.loadBalancer.ingress[0].ip}"
CERTIFICATE_STATUS_JSONPATH = "{.status.certificateStatus}"


@dataclass(frozen=True)
class StatusReport:
    domain_name: str
    static_address: Optional[str]
    ingress_address: Optional[str]
    certificate_status: Optional[str]

    @property
    def address_matches(self) -> bool:
        return self.ingress_address is not None and self.ingress_address == self.static_address

    @property
    def certificate_active(self) -> bool:
        return (self.certificate_status or "").lower() == "active"

    def render(self) -> str:
        lines: List[str] = []
        lines.append("# Deploy status")
        lines.append(f"- domain: {self.domain_name}")
        lines.append(f"- static address: {self.static_address or '(not found)'}")

        if self.ingress_address is None:
            lines.append("- ingress address: (아직 할당되지 않음)")
        elif self.address_matches:
            lines.append(f"- ingress address: {self.ingress_address} (고정 IP 와 일치)")
        else:
            lines.append(f"- ingress address: {self.ingress_address} (고정 IP 와 다름, Ingress 안정화 대기 필요)")

        if self.certificate_active:
            lines.append(f"- certificate: {self.certificate_status}")
            lines.append(f"- url: https://{self.domain_name}")
        else:
            status = self.certificate_status or "(조회 불가)"
            lines.append(f"- certificate: {status} (프로비저닝에는 최대 수십 분이 걸릴 수 있습니다)")
            lines.append(f"- url: http://{self.domain_name} (인증서 활성화 후 https 사용 가능)")

        return "\n".join(lines)


def collect_status(
    cfg: DeployConfig,
    delay: Optional[float] = None,
    static_address: Optional[str] = None,
) -> StatusReport:
    """
    delay 초 만큼 한 번 기다린 뒤 상태를 조회한다. 재시도는 하지 않는다.

    static_address 가 주어지지 않으면 gcloud 로 다시 조회한다.
    """
    wait = cfg.status_delay if delay is None else delay
    if wait > 0:
        logger.info("Ingress 상태 반영 대기: %.0f초", wait)
        time.sleep(wait)

    if static_address is None:
        static_address = gcp_network.describe_static_address(cfg)

    ingress_address = kubectl.get_jsonpath("ingress", cfg.ingress_name, cfg.namespace, INGRESS_IP_JSONPATH)
    certificate_status = kubectl.get_jsonpath(
        "managedcertificate", cfg.certificate_name, cfg.namespace, CERTIFICATE_STATUS_JSONPATH
    )

    report = StatusReport(
        domain_name=cfg.domain_name,
        static_address=static_address,
        ingress_address=ingress_address,
        certificate_status=certificate_status,
    )
    logger.info(
        "상태 조회 결과: ingress=%s certificate=%s",
        report.ingress_address,
        report.certificate_status,
    )
    return report
