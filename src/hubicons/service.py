import asyncio
from typing import Any

import structlog
from httpx import Response

from hubicons.config import HubConfig
from hubicons.coordinator import AcquisitionCoordinator
from hubicons.helpers import fetch_url
from hubicons.model import (
    DEFAULT_CONTENT_TYPE,
    CacheRecord,
    ImageIdentifier,
    LogoOutcome,
    OutcomeStatus,
    UpstreamAbsence,
    UpstreamTimeout,
    UpstreamTransientFailure,
)
from hubicons.resolver import UpstreamResolver
from hubicons.store import CacheStore

log = structlog.get_logger()

DELIVERY_FAILED_MESSAGE = "failed to fetch logo"


class LogoService:
    """Answer logo requests from the cache store, acquiring missing namespaces once"""

    def __init__(
        self,
        cfg: HubConfig,
        store: CacheStore,
        resolver: UpstreamResolver,
        coordinator: AcquisitionCoordinator[LogoOutcome] | None = None,
    ) -> None:
        self.cfg: HubConfig = cfg
        self.store: CacheStore = store
        self.resolver: UpstreamResolver = resolver
        self.coordinator: AcquisitionCoordinator[LogoOutcome] = coordinator or AcquisitionCoordinator()
        self.log: Any = structlog.get_logger().bind(component="logo_service")

    async def logo(self, identifier: ImageIdentifier) -> LogoOutcome:
        if identifier.official:
            return await self.official_logo(identifier)

        namespace: str = identifier.namespace  # type: ignore[assignment]
        record: CacheRecord | None = await self.store.lookup(namespace)
        if record is not None:
            self.log.debug("Cache hit", namespace=namespace, absent=record.absent)
            return LogoOutcome.from_record(record)

        return await self.coordinator.run_exclusive(namespace, lambda: self.acquire(identifier))

    async def official_logo(self, identifier: ImageIdentifier) -> LogoOutcome:
        url: str = self.resolver.official_logo_url(identifier.repository)
        try:
            response: Response | None = await self.fetch(url, use_cache=False)
        except UpstreamTimeout as e:
            return LogoOutcome(OutcomeStatus.TIMEOUT, message=str(e), official=True)
        if response is not None and response.status_code == 404:
            return LogoOutcome(
                OutcomeStatus.ABSENT, message=f"Image `{identifier}` has no logo on Docker Hub", official=True
            )
        if response is None or not response.is_success:
            return LogoOutcome(OutcomeStatus.DELIVERY_FAILED, message=DELIVERY_FAILED_MESSAGE, official=True)
        return LogoOutcome(
            OutcomeStatus.FOUND,
            content=response.content,
            content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            official=True,
        )

    async def acquire(self, identifier: ImageIdentifier) -> LogoOutcome:
        namespace: str = identifier.namespace  # type: ignore[assignment]
        alog = self.log.bind(namespace=namespace, image=str(identifier))

        # a previous acquisition may have settled since this caller's lookup
        record: CacheRecord | None = await self.store.lookup(namespace)
        if record is not None:
            alog.debug("Acquired by an earlier request")
            return LogoOutcome.from_record(record)

        try:
            logo_url: str = await self.resolver.resolve(identifier)
        except UpstreamAbsence as e:
            await self.store.upsert_negative(namespace)
            alog.info("No logo upstream, remembered as absent", reason=e.message)
            return LogoOutcome(OutcomeStatus.ABSENT, message=e.message)
        except UpstreamTimeout as e:
            alog.warning("Timed out resolving logo: %s", e)
            return LogoOutcome(OutcomeStatus.TIMEOUT, message=str(e))
        except UpstreamTransientFailure as e:
            alog.warning("Failed resolving logo: %s", e)
            return LogoOutcome(OutcomeStatus.DELIVERY_FAILED, message=str(e))

        return await self.fetch_and_persist(namespace, logo_url)

    async def fetch_and_persist(self, namespace: str, logo_url: str) -> LogoOutcome:
        try:
            response: Response | None = await self.fetch(logo_url)
        except UpstreamTimeout as e:
            return LogoOutcome(OutcomeStatus.TIMEOUT, message=str(e))
        if response is None or not response.is_success or not response.content:
            self.log.warning(
                "Logo delivery failed",
                namespace=namespace,
                url=logo_url,
                status=response.status_code if response is not None else None,
                empty=response is not None and not response.content,
            )
            return LogoOutcome(OutcomeStatus.DELIVERY_FAILED, message=DELIVERY_FAILED_MESSAGE)

        content: bytes = response.content
        content_type: str = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        await self.store.upsert_positive(namespace, logo_url, content, content_type)
        self.log.info("Logo acquired", namespace=namespace, url=logo_url, content_type=content_type, size=len(content))
        return LogoOutcome(OutcomeStatus.FOUND, content=content, content_type=content_type)

    async def fetch(self, url: str, use_cache: bool = True) -> Response | None:
        return await asyncio.to_thread(
            fetch_url,
            url,
            timeout=self.cfg.asset_timeout,
            use_cache=use_cache and self.cfg.http_cache,
        )
