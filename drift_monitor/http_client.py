"""Shared HTTP plumbing for the drift monitor."""

import logging
import tempfile
from pathlib import Path
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from . import __version__
from .errors import DownloadError

logger = logging.getLogger(__name__)

USER_AGENT = f"terraform-drift-monitor/{__version__}"
CHUNK_SIZE = 1 << 16


def create_http_session() -> requests.Session:
    """
    Create a pooled requests session.

    No retry strategy is mounted: every external call runs exactly once and a
    failure aborts the run.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})

    adapter = HTTPAdapter(max_retries=0, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


def download_to_file(
    session: requests.Session,
    url: str,
    destination_dir: Path,
    suffix: str = "",
    headers: Optional[dict] = None,
) -> Path:
    """
    Stream ``url`` into a new temporary file under ``destination_dir``.

    Raises:
        DownloadError: On transport failure or a non-2xx response
    """
    destination_dir.mkdir(parents=True, exist_ok=True)
    try:
        response = session.get(url, headers=headers, stream=True, allow_redirects=False)
    except requests.exceptions.RequestException as e:
        raise DownloadError(f"Failed to download {url}: {e}") from e

    with response:
        if response.status_code != 200:
            raise DownloadError(f"Failed to download {url}: HTTP {response.status_code}")

        temp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(delete=False, dir=destination_dir, suffix=suffix) as tmp:
                temp_path = Path(tmp.name)
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    tmp.write(chunk)
        except requests.exceptions.RequestException as e:
            temp_path.unlink(missing_ok=True)
            raise DownloadError(f"Download of {url} was interrupted: {e}") from e
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise DownloadError(f"Failed to persist download of {url}: {e}") from e

    logger.debug(f"Downloaded {url} -> {temp_path}")
    return temp_path
