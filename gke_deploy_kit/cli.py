import os
import sys
from dataclasses import replace
from typing import Optional

import click

from .config import BUILD_MODES, load_env_files, DeployConfig
from .logging_utils import setup_logging, get_logger
from .cluster_applier import ALL_STAGES, workload_manifest_paths
from .image_builder import image_references
from .manifest_patcher import patch_manifests
from .orchestrator import check_all, deploy_all, plan_all
from .status_reporter import collect_status


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """GKE 프론트엔드/백엔드 배포용 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context, project_id: Optional[str] = None) -> DeployConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = DeployConfig.from_env(project_id=project_id)
    # 매니페스트/빌드 컨텍스트 경로는 작업 디렉토리 기준
    if base_dir != ".":
        cfg = replace(
            cfg,
            manifest_dir=os.path.join(base_dir, cfg.manifest_dir),
            backend_source_dir=os.path.join(base_dir, cfg.backend_source_dir),
            frontend_source_dir=os.path.join(base_dir, cfg.frontend_source_dir),
        )
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_or_exit(ctx: click.Context, project_id: Optional[str] = None) -> DeployConfig:
    try:
        return _load_config_from_ctx(ctx, project_id)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """배포 대상, 이미지 참조, 적용 단계를 요약 출력 (클러스터/레지스트리 변경 없음)"""
    cfg = _load_or_exit(ctx)
    click.echo(plan_all(cfg))


@main.command(name="deploy")
@click.option("--project-id", "project_id", default=None, help="GCP 프로젝트 ID (기본: GCP_PROJECT_ID 또는 gcloud 설정)")
@click.option("--tag", "tag", default=None, help="이미지 태그 (기본: IMAGE_TAG 또는 prod)")
@click.option("--build/--no-build", "build", default=None, help="이미지 빌드/푸시 여부 (기본: BUILD_IMAGES)")
@click.option(
    "--cloud-build/--local-build",
    "cloud_build",
    default=None,
    help="원격 빌드(gcloud builds submit) 또는 로컬 docker 빌드 (기본: BUILD_MODE)",
)
@click.option(
    "--only",
    "only",
    type=str,
    default="",
    help=f"쉼표로 구분된 단계 이름({','.join(ALL_STAGES)}). 기본은 전체 단계.",
)
@click.option("--restart", is_flag=True, help="backend/frontend 디플로이먼트를 재시작해 새 이미지를 받도록 합니다.")
@click.option("--strict-patch", is_flag=True, help="매니페스트에서 image 참조를 찾지 못하면 실패로 처리합니다.")
@click.pass_context
def deploy(
    ctx: click.Context,
    project_id: Optional[str],
    tag: Optional[str],
    build: Optional[bool],
    cloud_build: Optional[bool],
    only: str,
    restart: bool,
    strict_patch: bool,
) -> None:
    """이미지 빌드 → 매니페스트 갱신 → 클러스터 적용 → 상태 보고"""
    cfg = _load_or_exit(ctx, project_id)

    overrides: dict = {}
    if tag:
        overrides["image_tag"] = tag
    if build is not None:
        overrides["build_images"] = build
    if cloud_build is not None:
        overrides["build_mode"] = BUILD_MODES[1] if cloud_build else BUILD_MODES[0]
    if overrides:
        cfg = replace(cfg, **overrides)

    only_list: Optional[list[str]] = None
    if only.strip():
        only_list = [p.strip() for p in only.split(",") if p.strip()]

        invalid = sorted({s for s in only_list if s not in ALL_STAGES})
        if invalid:
            click.echo(
                "[ERROR] 잘못된 단계 이름이 있습니다: "
                + ", ".join(invalid)
                + f"\n허용되는 단계: {', '.join(ALL_STAGES)}",
                err=True,
            )
            sys.exit(1)

    try:
        summary, has_failures = deploy_all(
            cfg, only_stages=only_list, restart=restart, strict_patch=strict_patch
        )
    except Exception as e:  # noqa: BLE001
        logger.exception("배포 중 오류 발생")
        click.echo(f"[ERROR] 배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo(summary)

    if has_failures:
        sys.exit(1)


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """
    고정 IP, 클러스터 연결, 매니페스트 파일을 점검한다. (리소스 변경 없음)
    """
    cfg = _load_or_exit(ctx)

    try:
        report, has_issues = check_all(cfg)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)

    if has_issues:
        sys.exit(1)


@main.command()
@click.option("--delay", type=float, default=None, help="조회 전 대기 시간(초) (기본: STATUS_DELAY_SECONDS)")
@click.pass_context
def status(ctx: click.Context, delay: Optional[float]) -> None:
    """Ingress 외부 주소와 관리형 인증서 상태를 출력"""
    cfg = _load_or_exit(ctx)

    try:
        report = collect_status(cfg, delay=delay)
    except Exception as e:  # noqa: BLE001
        logger.exception("상태 조회 중 오류 발생")
        click.echo(f"[ERROR] 상태 조회 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report.render())


@main.command()
@click.option("--tag", "tag", default=None, help="이미지 태그 (기본: IMAGE_TAG 또는 prod)")
@click.option("--strict", is_flag=True, help="image 참조를 찾지 못한 파일이 있으면 실패로 처리합니다.")
@click.pass_context
def patch(ctx: click.Context, tag: Optional[str], strict: bool) -> None:
    """backend/frontend 매니페스트의 image 참조만 갱신"""
    cfg = _load_or_exit(ctx)

    try:
        results = patch_manifests(workload_manifest_paths(cfg), image_references(cfg, tag), strict=strict)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 매니페스트 갱신 실패: {e}", err=True)
        sys.exit(1)

    for r in results:
        state = "updated" if r.changed else "unchanged"
        click.echo(f"- {r.path}: {state} ({r.matched} match)")


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """
    현재 디렉토리에 env 템플릿(.env.deploy.example)을 복사하는 초기화.
    """
    from importlib import resources

    base_dir: str = ctx.obj["chdir"]
    name = "env.deploy.example"
    target = os.path.join(base_dir, "." + name)

    if os.path.exists(target):
        click.echo(f".{name} 이(가) 이미 존재하여 건너뜀")
        return
    try:
        template = resources.files("gke_deploy_kit.examples").joinpath(name).read_text(encoding="utf-8")
    except FileNotFoundError:
        click.echo(f"템플릿 {name} 을(를) 패키지에서 찾을 수 없습니다.", err=True)
        sys.exit(1)
    with open(target, "w", encoding="utf-8") as dst:
        dst.write(template)
    click.echo(f".{name} 템플릿을 생성했습니다. .env.deploy 로 복사한 뒤 값을 채우세요.")
