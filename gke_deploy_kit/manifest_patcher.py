"""
manifest_patcher
----------------

Kubernetes 매니페스트의 `image:` 값을 빌드한 이미지 참조로 바꿔 쓰는 모듈.

이미지 이름(레지스트리 경로의 마지막 세그먼트)이 같은 줄만 교체하므로
같은 참조로 여러 번 실행해도 결과가 같다.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

from .image_builder import ImageReference
from .logging_utils import get_logger


logger = get_logger(__name__)

_IMAGE_LINE = re.compile(
    r"^(?P<prefix>\s*(?:-\s+)?image:\s*)(?P<quote>[\"']?)(?P<value>[^\s\"'#]+)(?P=quote)",
    re.MULTILINE,
)


@dataclass(frozen=True)
class PatchResult:
    path: str
    matched: int
    changed: bool


def image_name_of(value: str) -> str:
    """
    `host/project/name:tag` 또는 `name@sha256:...` 에서 name 만 뽑는다.
    """
    last = value.rsplit("/", 1)[-1]
    last = last.split("@", 1)[0]
    return last.split(":", 1)[0]


def find_image_references(path: str) -> List[str]:
    text = Path(path).read_text(encoding="utf-8")
    return [m.group("value") for m in _IMAGE_LINE.finditer(text)]


def patch_text(text: str, images: Sequence[ImageReference]) -> tuple[str, int]:
    """
    텍스트의 image 값을 교체하고 (새 텍스트, 매칭된 줄 수) 를 반환한다.
    """
    by_name = {img.image_name: str(img) for img in images}
    matched = 0

    def _replace(m: re.Match[str]) -> str:
        nonlocal matched
        new_value = by_name.get(image_name_of(m.group("value")))
        if new_value is None:
            return m.group(0)
        matched += 1
        quote = m.group("quote")
        return f"{m.group('prefix')}{quote}{new_value}{quote}"

    return _IMAGE_LINE.sub(_replace, text), matched


def patch_manifest(path: str, images: Sequence[ImageReference], strict: bool = False) -> PatchResult:
    """
    매니페스트 파일 하나를 제자리에서 수정한다.

    매칭되는 image 줄이 없으면 파일은 그대로 두고 경고만 남긴다.
    strict=True 이면 ValueError 를 발생시킨다.
    """
    file_path = Path(path)
    original = file_path.read_text(encoding="utf-8")
    patched, matched = patch_text(original, images)

    if matched == 0:
        names = ", ".join(img.image_name for img in images)
        if strict:
            raise ValueError(f"{path}: 교체할 image 참조를 찾지 못했습니다 (대상 이미지: {names})")
        logger.warning("%s: 교체할 image 참조가 없어 파일을 그대로 둡니다 (대상 이미지: %s)", path, names)
        return PatchResult(path=str(path), matched=0, changed=False)

    changed = patched != original
    if changed:
        file_path.write_text(patched, encoding="utf-8")
        logger.info("매니페스트 image 갱신: %s (%d곳)", path, matched)
    else:
        logger.info("매니페스트가 이미 최신입니다: %s", path)
    return PatchResult(path=str(path), matched=matched, changed=changed)


def patch_manifests(
    paths: Iterable[str],
    images: Sequence[ImageReference],
    strict: bool = False,
) -> List[PatchResult]:
    return [patch_manifest(p, images, strict=strict) for p in paths]
