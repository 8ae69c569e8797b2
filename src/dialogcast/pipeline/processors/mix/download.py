"""
远程 segment 下载：requests 流式下载到作用域临时目录，带重试退避
"""
from pathlib import Path
from typing import Optional

import requests

from dialogcast.errors import SegmentDownloadError
from dialogcast.utils.logger import get_logger
from dialogcast.utils.retry import RetryPolicy, call_with_retry

logger = get_logger("mix.download")

CHUNK_SIZE = 64 * 1024


def _fetch_to_file(url: str, target: Path, session: requests.Session, timeout: float) -> None:
    temp = target.with_suffix(target.suffix + ".part")
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(temp, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
        temp.replace(target)
    except Exception:
        if temp.exists():
            temp.unlink()
        raise


def download_segment(
    url: str,
    target: Path,
    *,
    index: Optional[int] = None,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
    retry_policy: Optional[RetryPolicy] = None,
) -> bytes:
    """
    下载一个 segment 的音频字节。

    Raises:
        SegmentDownloadError: 重试耗尽
    """
    if session is None:
        with requests.Session() as owned:
            return download_segment(
                url, target, index=index, session=owned, timeout=timeout, retry_policy=retry_policy
            )
    try:
        call_with_retry(
            lambda: _fetch_to_file(url, target, session, timeout),
            retry_policy or RetryPolicy(),
            retry_on=lambda e: isinstance(e, requests.RequestException),
            description=f"download segment {index}",
        )
    except requests.RequestException as e:
        raise SegmentDownloadError(url, e, index=index) from e
    data = target.read_bytes()
    logger.debug(f"downloaded segment {index}: {len(data)} bytes")
    return data
