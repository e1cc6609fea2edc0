"""Download of source videos into a session workspace."""

import logging
from pathlib import Path
from typing import Optional

import httpx

from app.core.logging import log_error, log_info
from app.modules.merge.exceptions import FetchError
from app.modules.merge.workspace import SessionWorkspace

logger = logging.getLogger(__name__)


class VideoFetcher:
    """Downloads an ordered list of URLs, one at a time, in input order.

    A single failed URL aborts the batch; nothing is retried. Partially
    written files stay registered with the workspace, which removes them.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=None, follow_redirects=True)

    async def fetch_all(self, urls: list[str], workspace: SessionWorkspace) -> list[Path]:
        """Download every URL and return the staged paths in input order.

        Raises:
            FetchError: If any URL is unreachable or answers non-2xx
        """
        log_info(logger, "Downloading videos", count=len(urls), session_id=workspace.session_id)
        staged: list[Path] = []
        async with self._client() as client:
            for index, url in enumerate(urls):
                destination = workspace.staged_path(index)
                await self._fetch_one(client, url, index, destination)
                staged.append(destination)
        return staged

    async def _fetch_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        index: int,
        destination: Path,
    ) -> None:
        log_info(logger, "Downloading video", url=url, index=index)
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise FetchError(
                        url, index, f"HTTP error! status: {response.status_code}",
                        status_code=response.status_code,
                    )
                with open(destination, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log_error(logger, "Error downloading video", e, url=url, index=index)
            raise FetchError(url, index, str(e) or type(e).__name__) from e
        except FetchError as e:
            log_error(logger, "Error downloading video", url=url, index=index, error=str(e))
            raise

        log_info(
            logger,
            "Video downloaded successfully",
            file=destination.name,
            size_bytes=destination.stat().st_size,
        )
