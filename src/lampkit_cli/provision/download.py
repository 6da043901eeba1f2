"""HTTP downloads for archives fetched during provisioning."""

from __future__ import annotations

from pathlib import Path

import httpx

# Connect/read timeouts; a stalled mirror fails instead of hanging
DOWNLOAD_TIMEOUT = httpx.Timeout(30.0, read=300.0)


def download_file(url: str, dest: Path) -> None:
    """Stream url into dest.

    Raises:
        httpx.HTTPError: On connection failure or a non-2xx response.
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with httpx.stream("GET", url, timeout=DOWNLOAD_TIMEOUT, follow_redirects=True) as response:
        response.raise_for_status()
        with open(dest, "wb") as f:
            for chunk in response.iter_bytes():
                f.write(chunk)
