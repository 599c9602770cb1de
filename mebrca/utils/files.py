"""Utilities for handling file operations.

This module provides utilities such as downloading files (used to fetch GDC
beta value files and the probe annotation), ensuring directories exist and
reading tabular files that may be gz-compressed.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, Union

import pandas as pd
import requests
from tqdm import tqdm

logger = logging.getLogger(__name__)

try:
    from importlib.resources import files
except (ImportError, ModuleNotFoundError):
    from importlib_resources import files


__all__ = [
    "download_file",
    "download_files",
    "ensure_directory_exists",
    "get_resource_path",
    "read_table",
]


def get_resource_path(package: str, resource_name: str = "") -> Path:
    """Returns the full path to the resource within the specified package."""
    package_path = files(package)
    return package_path.joinpath(resource_name)


def ensure_directory_exists(path_like: Union[str, Path]) -> None:
    """Ensures the ancestor directories of the provided path exist."""
    Path(path_like).mkdir(parents=True, exist_ok=True)


def download_file(
    url: str,
    save_path: Union[str, Path],
    overwrite: bool = False,
    show_progress: bool = True,
    chunk_size: int = 8192,
    max_attempts: int = 1,
    retry_delay: float = 3.0,
    timeout: float = 60,
) -> None:
    """Download a file from a URL and save it to `save_path`.

    Existing files are kept unless `overwrite` is set, which makes the
    download directory a cache for raw data. The file is first written to a
    '.part' file and renamed once complete.

    Args:
        url (str): The URL from which the file will be downloaded.
        save_path (path_like): The path where the file will be saved.
        overwrite (bool): If True, overwrite existing file. Defaults to False.
        show_progress (bool): Display logs and progress bar. Defaults to True.
        chunk_size (int): Chunk size in bytes. Defaults to 8192.
        max_attempts (int): Number of attempts before giving up. Defaults to
            1 (no retry).
        retry_delay (float): Seconds to wait between attempts. Defaults to 3.0.
        timeout (float): Request timeout in seconds. Defaults to 60.

    Raises:
        RuntimeError: If all attempts failed.
    """
    save_path = Path(save_path)
    ensure_directory_exists(save_path.parent)

    if save_path.exists() and not overwrite:
        logger.debug("File already exists at %s. Skipping download.", save_path)
        return

    temp_path = save_path.with_suffix(save_path.suffix + ".part")

    def _single_download() -> None:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("content-length", 0))
            progress_bar = (
                tqdm(
                    total=total_size,
                    unit="iB",
                    unit_scale=True,
                    desc="Downloading",
                )
                if show_progress
                else None
            )
            with temp_path.open("wb") as file:
                for chunk in response.iter_content(chunk_size=chunk_size):
                    if chunk:
                        file.write(chunk)
                        if progress_bar:
                            progress_bar.update(len(chunk))
            if progress_bar:
                progress_bar.close()

    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            if show_progress:
                logger.info("Downloading from %s to %s...", url, save_path)
            _single_download()
            temp_path.rename(save_path)
            return
        except requests.RequestException as exc:
            last_error = exc
            logger.warning(
                "Download attempt %d/%d failed: %s", attempt, max_attempts, exc
            )
            if attempt < max_attempts:
                logger.warning("Retrying in %.1f seconds...", retry_delay)
                time.sleep(retry_delay)

    temp_path.unlink(missing_ok=True)
    msg = f"Failed to download {url} after {max_attempts} attempt(s)."
    raise RuntimeError(msg) from last_error


def download_files(
    urls: Iterable[str],
    save_paths: Iterable[Union[str, Path]],
    overwrite: bool = False,
    show_progress: bool = True,
    max_workers: Union[int, None] = None,
    **kwargs,
) -> None:
    """Download multiple files in parallel.

    Unlike a single download, the first failing file aborts the whole batch:
    the error is re-raised after the remaining downloads are cancelled.

    Args:
        urls (Iterable[str]): URLs to download.
        save_paths (Iterable[str | Path]): Corresponding save paths.
        overwrite (bool): Overwrite existing files.
        show_progress (bool): Show progress bar.
        max_workers (int | None): Number of parallel downloads.
        **kwargs: Passed on to `download_file`.
    """
    urls = list(urls)
    save_paths = [Path(p) for p in save_paths]

    if len(urls) != len(save_paths):
        msg = "urls and save_paths must have the same length"
        raise ValueError(msg)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(
                download_file,
                url,
                path,
                overwrite=overwrite,
                show_progress=False,
                **kwargs,
            ): url
            for url, path in zip(urls, save_paths)
        }
        with tqdm(
            total=len(futures),
            desc="Downloading (parallel)",
            unit="file",
            disable=not show_progress,
        ) as progress:
            for future in as_completed(futures):
                error = future.exception()
                if error is not None:
                    logger.error(
                        "Error downloading %s: %s", futures[future], error
                    )
                    for pending in futures:
                        pending.cancel()
                    raise error
                progress.update(1)


def read_table(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """Reads a tab-separated file, which may be gz-compressed."""
    return pd.read_csv(path, sep="\t", compression="infer", **kwargs)
