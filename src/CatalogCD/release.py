"""Release building: the inverse of catalog synchronization.

Local Tekton resource files are scanned, recorded in a fresh contract with
their checksums, copied into ``<output>/<kind>s/<name>/`` together with any
sibling ``README.md``, and packed into the gzip tarball published next to the
contract.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
from pathlib import Path
from typing import Iterable, List, Tuple, Union

from .contract import Contract
from .errors import ConfigurationError, ContractError, UnsupportedResourceError
from .resources import scan
from .settings import CONTRACT_FILENAME, README_FILENAME, RESOURCES_TARBALL_NAME

logger = logging.getLogger(__name__)

__all__ = ["build_release", "create_archive"]


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists() and source.resolve() == target.resolve():
        return
    shutil.copyfile(source, target)


def create_archive(output: Path, tarball: Path, exclude: Iterable[str]) -> List[str]:
    """Pack every regular file under ``output`` into ``tarball``.

    Archive names are relative to ``output`` and added in sorted order.  Files
    whose basename is listed in ``exclude`` are left out.

    Returns:
        The archive names written.
    """
    excluded = set(exclude)
    files = sorted(
        path
        for path in output.rglob("*")
        if path.is_file() and not path.is_symlink() and path.name not in excluded
    )
    names: List[str] = []
    with tarfile.open(tarball, "w:gz") as archive:
        for path in files:
            name = path.relative_to(output).as_posix()
            archive.add(path, arcname=name, recursive=False)
            names.append(name)
    return names


def build_release(
    paths: Iterable[Union[str, Path]],
    version: str,
    output: Union[str, Path, None],
    *,
    catalog_name: str = CONTRACT_FILENAME,
    resources_name: str = RESOURCES_TARBALL_NAME,
) -> Tuple[Path, Path]:
    """Build a release contract and resources tarball from local files.

    Args:
        paths: Directories, glob patterns, or files holding Tekton resources.
        version: Release version recorded for every resource.
        output: Directory receiving the contract, the resource copies, and
            the tarball.
        catalog_name: Contract file name.
        resources_name: Tarball file name.

    Returns:
        ``(contract_path, tarball_path)``.

    Raises:
        ConfigurationError: Missing output, version, or input paths.
        UnsupportedResourceError: A scanned file declares an untracked kind.
    """
    if not output:
        raise ConfigurationError("--output flag is not informed")
    if not version:
        raise ConfigurationError("--version flag is not informed")
    locations = list(paths)
    if not locations:
        raise ConfigurationError("no tekton resource paths have been found")

    out = Path(output)
    out.mkdir(parents=True, exist_ok=True)
    logger.info("# Found %d path(s) to inspect", len(locations), extra={"stage": "release"})

    contract = Contract.empty()
    for location in locations:
        for file in scan(location):
            logger.info("# Loading resource file: %s", file, extra={"stage": "release", "filename": str(file)})
            try:
                resource = contract.add_resource_file(file, version)
            except UnsupportedResourceError:
                raise
            except ContractError as exc:
                logger.warning(
                    "# WARNING: Skipping file %s: %s",
                    file,
                    exc,
                    extra={"stage": "release", "filename": str(file)},
                )
                continue
            target = out / resource.filename
            _copy_file(file, target)
            readme = file.parent / README_FILENAME
            if readme.is_file():
                _copy_file(readme, target.parent / README_FILENAME)

    contract_path = out / catalog_name
    logger.info("# Saving release contract at %s", contract_path, extra={"stage": "release"})
    contract.save_as(contract_path)

    tarball = out / resources_name
    logger.info("# Creating tarball at %s", tarball, extra={"stage": "release"})
    create_archive(out, tarball, exclude=(catalog_name, resources_name))
    return contract_path, tarball
