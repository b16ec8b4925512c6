"""Async functional flattening operations."""

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .core.finalizer import finalize_image
from .core.merger import merge_layers
from .core.resolver import resolve_layer_chain
from .core.types import FlattenConfig, ProgressCallback, notify
from .exceptions import FlattenError
from .models import MergedLayer
from .tar.codec import ArchiveCodec, TarArchiveCodec
from .utils.fs import initialize_empty_directory, is_within
from .utils.validator import parse_name_version

logger = logging.getLogger(__name__)

COMBINED_LAYER_DIR = "combinedLayersData"
COMBINED_LAYER_ARCHIVE = "combinedLayer.tar"
INPUT_IMAGE_DIR = "inputImage"
OUTPUT_IMAGE_DIR = "outputImage"


def default_work_dir(output_archive: Path) -> Path:
    """Scratch directory next to the output archive: ``<stem>_temp``."""
    output_archive = Path(output_archive)
    return output_archive.parent / f"{output_archive.stem}_temp"


def prepare_work_dir(
    input_archive: Path, output_archive: Path, work_dir: Path | None = None
) -> Path:
    """Create the scratch directory for one archive run.

    A caller-supplied ``work_dir`` is never emptied: a fresh directory is
    created inside it. The default ``<stem>_temp`` directory is emptied
    first, unless that would delete the input or output archive.

    Raises:
        FlattenError: If the default scratch directory holds either archive
    """
    if work_dir is not None:
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{Path(output_archive).stem}_", dir=work_dir))

    work_dir = default_work_dir(output_archive)
    for archive in (input_archive, output_archive):
        if is_within(work_dir, archive):
            raise FlattenError(
                f"Scratch directory {work_dir} contains {archive}; pass a separate work_dir"
            )
    initialize_empty_directory(work_dir)
    return work_dir


async def flatten(
    input_tree: Path,
    output_tree: Path,
    name_version: str,
    work_dir: Path | None = None,
    config: FlattenConfig | None = None,
    codec: ArchiveCodec | None = None,
    progress: ProgressCallback | None = None,
) -> MergedLayer:
    """압축 해제된 이미지 트리를 단일 레이어 이미지 트리로 병합합니다.

    레이어 체인을 부모 포인터로 해석하고, 각 레이어를 순서대로 작업 디렉토리에
    풀어 whiteout을 적용한 뒤, 새 레이어 메타데이터와 repositories 파일을
    ``output_tree``에 기록합니다.

    Args:
        input_tree: 압축 해제된 입력 이미지 디렉토리 (repositories, <id>/json, <id>/layer.tar)
        output_tree: 결과 이미지 트리를 만들 디렉토리 (기존 내용은 삭제됨)
        name_version: 결과 이미지의 "이름:버전" (예: "myimage:1.0")
        work_dir: 병합 작업 디렉토리 (기본값: output_tree 옆의 "<이름>_work", 정리는 호출자 책임)
        config: 실행 설정 (타임아웃, 레이어 ID 생성 방식)
        codec: 아카이브 코덱 (기본값: TarArchiveCodec)
        progress: 진행 상황 콜백 ``progress(stage, message)``, 동기/비동기 모두 가능

    Returns:
        MergedLayer: 새로 생성된 단일 레이어 정보

    Raises:
        InvalidNameVersionError: name_version 형식이 잘못된 경우 (파일 변경 전)
        MalformedImageError: repositories 또는 레이어 메타데이터가 잘못된 경우
        CyclicChainError: 부모 포인터가 순환하는 경우
        ExternalToolError: 레이어 아카이브 처리 실패 또는 타임아웃

    Examples:
        merged = await flatten(Path("unpacked"), Path("flat"), "myimage:1.0")
        print(f"새 레이어 ID: {merged.layer_id}, 크기: {merged.size} bytes")
    """
    # Reject a bad name before touching the filesystem
    parse_name_version(name_version)

    config = config or FlattenConfig()
    codec = codec or TarArchiveCodec(timeout=config.timeout)
    output_tree = Path(output_tree)
    if work_dir is None:
        work_dir = output_tree.parent / f"{output_tree.name}_work"
    work_dir = Path(work_dir)

    chain = await resolve_layer_chain(input_tree, progress=progress)

    combined_dir = work_dir / COMBINED_LAYER_DIR
    await merge_layers(input_tree, chain, combined_dir, codec=codec, progress=progress)

    await notify(progress, "pack", "Packing combined layers into single layer...")
    combined_archive = work_dir / COMBINED_LAYER_ARCHIVE
    await codec.pack(combined_dir, combined_archive)

    return await finalize_image(
        combined_dir,
        combined_archive,
        chain.leaf_record,
        name_version,
        output_tree,
        layer_id_factory=config.layer_id_factory,
        progress=progress,
    )


async def flatten_image_archive(
    input_archive: Path,
    output_archive: Path,
    name_version: str,
    config: FlattenConfig | None = None,
    codec: ArchiveCodec | None = None,
    progress: ProgressCallback | None = None,
) -> MergedLayer:
    """docker save 로 만든 tar 파일을 단일 레이어 이미지 tar 파일로 변환합니다.

    결과는 작업 디렉토리에 먼저 기록된 뒤 ``output_archive``로 이름이
    바뀌므로, 실패 시 기존 출력 파일은 그대로 유지됩니다. 실패한 경우
    작업 디렉토리는 확인을 위해 남겨둡니다.
    ``config.work_dir``를 지정하면 그 안에 새 하위 디렉토리를 만들어 사용하며
    기존 내용은 지우지 않습니다.

    Args:
        input_archive: 입력 이미지 tar 파일 경로
            - 상대경로: "image.tar", "./exports/app.tar"
            - 절대경로: "/home/user/images/app.tar"
        output_archive: 결과 tar 파일 경로 ("docker load" 용)
        name_version: 결과 이미지의 "이름:버전" (예: "myimage:1.0")
        config: 실행 설정 (타임아웃, 작업 디렉토리, 레이어 ID 생성 방식)
        codec: 아카이브 코덱 (기본값: TarArchiveCodec)
        progress: 진행 상황 콜백

    Returns:
        MergedLayer: 새로 생성된 단일 레이어 정보
            (layer_dir, archive_path는 작업 디렉토리 안을 가리키며
            keep_work_dir가 False이면 삭제됨)

    Raises:
        InvalidNameVersionError: name_version 형식이 잘못된 경우 (파일 변경 전)
        MalformedImageError: 입력 이미지 구조가 잘못된 경우
        CyclicChainError: 부모 포인터가 순환하는 경우
        ExternalToolError: tar 처리 실패 또는 타임아웃
        FlattenError: 기본 작업 디렉토리가 입력 또는 출력 파일을 포함하는 경우

    Examples:
        merged = await flatten_image_archive("app.tar", "app-flat.tar", "app:flat")
        # docker load -i app-flat.tar
    """
    parse_name_version(name_version)

    config = config or FlattenConfig()
    codec = codec or TarArchiveCodec(timeout=config.timeout)
    input_archive = Path(input_archive)
    output_archive = Path(output_archive)
    loop = asyncio.get_running_loop()
    work_dir = await loop.run_in_executor(
        None, prepare_work_dir, input_archive, output_archive, config.work_dir
    )

    input_dir = work_dir / INPUT_IMAGE_DIR
    await notify(progress, "unpack", f"Unpacking image {input_archive} into {input_dir}...")
    await codec.extract(input_archive, input_dir)

    output_dir = work_dir / OUTPUT_IMAGE_DIR
    merged = await flatten(
        input_dir,
        output_dir,
        name_version,
        work_dir=work_dir,
        config=config,
        codec=codec,
        progress=progress,
    )

    await notify(progress, "pack", "Packing final image...")
    staged_archive = work_dir / output_archive.name
    await codec.pack(output_dir, staged_archive)
    await loop.run_in_executor(None, _publish, staged_archive, output_archive)
    logger.debug("Wrote %s", output_archive)

    if not config.keep_work_dir:
        await notify(progress, "cleanup", f"Cleaning up {work_dir}...")
        await loop.run_in_executor(None, shutil.rmtree, work_dir)

    return merged


def _publish(staged_archive: Path, output_archive: Path) -> None:
    """Move a finished archive over ``output_archive`` in one rename."""
    output_archive.parent.mkdir(parents=True, exist_ok=True)
    partial = output_archive.with_name(f".{output_archive.name}.partial")
    # The work dir may live on another filesystem; rename only within the target dir
    shutil.move(str(staged_archive), str(partial))
    os.replace(partial, output_archive)
