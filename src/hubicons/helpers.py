import time

import httpx
import structlog
from hishel import CacheOptions, SpecificationPolicy  # pyright: ignore[reportAttributeAccessIssue]
from hishel.httpx import SyncCacheClient
from httpx import Response

from hubicons.model import UpstreamTimeout

log = structlog.get_logger()


class CacheMetadata:
    """Cache metadata extracted from hishel response extensions"""

    def __init__(self, response: Response) -> None:
        self.from_cache: bool = response.extensions.get("hishel_from_cache", False)
        self.revalidated: bool = response.extensions.get("hishel_revalidated", False)
        self.created_at: float | None = response.extensions.get("hishel_created_at")
        self.stored: bool = response.extensions.get("hishel_stored", False)
        self.age: float | None = None
        if self.created_at is not None:
            self.age = time.time() - self.created_at

    def __str__(self) -> str:
        """Summarize in a string"""
        return f"cached: {self.from_cache}, revalidated: {self.revalidated}, age:{self.age}, stored:{self.stored}"


def fetch_url(
    url: str,
    timeout: float = 10.0,
    cache_ttl: int | None = None,  # default to server responses for cache ttl
    follow_redirects: bool = True,
    use_cache: bool = True,
) -> Response | None:
    """Blocking fetch, returns None if the server could not be reached

    Raises UpstreamTimeout when the server does not answer in time
    """
    try:
        headers = [("Accept", "image/*")]
        if cache_ttl is not None:
            headers.append(("cache-control", f"max-age={cache_ttl}"))
        client: httpx.Client
        if use_cache:
            cache_policy = SpecificationPolicy(
                cache_options=CacheOptions(
                    shared=False,  # Private browser cache
                    allow_stale=False,
                )
            )
            client = SyncCacheClient(headers=headers, follow_redirects=follow_redirects, timeout=timeout, policy=cache_policy)
        else:
            client = httpx.Client(headers=headers, follow_redirects=follow_redirects, timeout=timeout)
        with client:
            log.debug(f"Fetching URL {url}, redirects={follow_redirects}, cache={use_cache}, cache_ttl={cache_ttl}")
            response: Response = client.get(url, extensions={"hishel_ttl": cache_ttl} if use_cache else None)
            cache_metadata: CacheMetadata = CacheMetadata(response)
            if not response.is_success:
                log.debug("URL %s fetch returned non-success status: %s, %s", url, response.status_code, cache_metadata.stored)
            else:
                log.debug(
                    "URL response: status: %s, type: %s, size: %s, %s",
                    response.status_code,
                    response.headers.get("content-type"),
                    len(response.content),
                    cache_metadata,
                )
            return response
    except httpx.TimeoutException as e:
        log.warning("URL %s timed out after %ss: %s", url, timeout, e)
        raise UpstreamTimeout(f"Timed out fetching {url}") from e
    except httpx.HTTPError as e:
        log.warning("URL %s failed to fetch: %s", url, e)
    return None
