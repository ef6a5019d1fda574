"""
gke_deploy_kit
--------------

GKE 배포 CLI 패키지.
프론트엔드/백엔드 이미지를 빌드·푸시하고, 매니페스트의 image 참조를 갱신한 뒤
namespace → database → backend → frontend → certificate → ingress 순서로
클러스터에 적용하고 Ingress/인증서 상태를 보고한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
