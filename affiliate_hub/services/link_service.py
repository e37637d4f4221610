import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import NotFoundError, ValidationError
from affiliate_hub.models import Link, LinkStatus, Partner, PartnerStatus, PlacementType, Product
from affiliate_hub.utils.crypto import generate_readable_short_code

logger = logging.getLogger(__name__)

MAX_SHORT_CODE_ATTEMPTS = 5


@dataclass
class LinkHealth:
    url: str
    status: int
    healthy: bool


@dataclass
class UnhealthyLink:
    id: str
    short_code: str
    url: str
    status: int


@dataclass
class LinkHealthReport:
    total: int = 0
    healthy: int = 0
    unhealthy: list[UnhealthyLink] = field(default_factory=list)


def is_valid_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def build_tracking_url(
    original_url: str,
    utm_source: str | None = None,
    utm_medium: str | None = None,
    utm_campaign: str | None = None,
    short_code: str | None = None,
    custom_params: dict[str, str] | None = None,
) -> str:
    """Append UTM, ``ref`` and custom query parameters, overriding existing keys."""
    parts = urlsplit(original_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))

    if utm_source:
        query["utm_source"] = utm_source
    if utm_medium:
        query["utm_medium"] = utm_medium
    if utm_campaign:
        query["utm_campaign"] = utm_campaign
    if short_code:
        query["ref"] = short_code
    if custom_params:
        query.update(custom_params)

    return urlunsplit(parts._replace(query=urlencode(query)))


def build_short_url(short_code: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/go/{short_code}"


class LinkService:
    def __init__(self, db: AsyncSession, http_client: httpx.AsyncClient | None = None):
        self.db = db
        self.http_client = http_client
        self.health_timeout = settings.link_health_timeout_seconds

    async def create_link(
        self,
        partner_id: str,
        original_url: str,
        placement_type: PlacementType | str = PlacementType.CONTENT,
        product_id: str | None = None,
        utm_source: str | None = None,
        utm_medium: str | None = None,
        utm_campaign: str | None = None,
        custom_params: dict[str, str] | None = None,
        expires_at: datetime | None = None,
    ) -> Link:
        if not is_valid_url(original_url):
            raise ValidationError(f"Invalid URL: {original_url}")

        try:
            placement = PlacementType(placement_type)
        except ValueError as e:
            raise ValidationError(f"Unknown placement type: {placement_type}") from e

        partner = await self.db.get(Partner, partner_id)
        if not partner:
            raise NotFoundError("Partner")

        product = None
        if product_id:
            product = await self.db.get(Product, product_id)
            if not product:
                raise NotFoundError("Product")

        short_code = await self._generate_unique_code(
            partner.slug, product.slug if product else None
        )

        source = utm_source or settings.affiliate_default_utm_source
        medium = utm_medium or placement.value
        tracking_url = build_tracking_url(
            original_url,
            utm_source=source,
            utm_medium=medium,
            utm_campaign=utm_campaign,
            short_code=short_code,
            custom_params=custom_params,
        )

        link = Link(
            short_code=short_code,
            partner_id=partner.id,
            product_id=product.id if product else None,
            original_url=original_url,
            tracking_url=tracking_url,
            short_url=build_short_url(short_code),
            placement_type=placement,
            utm_source=source,
            utm_medium=medium,
            utm_campaign=utm_campaign,
            status=LinkStatus.ACTIVE,
            expires_at=expires_at,
            total_clicks=0,
            total_conversions=0,
        )

        self.db.add(link)
        await self.db.flush()
        await self.db.refresh(link)

        logger.info(f"Created link {link.short_code} for partner {partner.slug}")
        return link

    async def _generate_unique_code(self, partner_slug: str, product_slug: str | None) -> str:
        for _ in range(MAX_SHORT_CODE_ATTEMPTS):
            code = generate_readable_short_code(partner_slug, product_slug)
            result = await self.db.execute(select(Link.id).where(Link.short_code == code))
            if result.scalar_one_or_none() is None:
                return code

        raise ValidationError("Could not generate a unique short code")

    async def get_link(self, link_id: str) -> Link:
        link = await self.db.get(Link, link_id)
        if not link:
            raise NotFoundError("Link")
        return link

    async def resolve_short_code(self, short_code: str) -> Link | None:
        result = await self.db.execute(
            select(Link)
            .options(selectinload(Link.partner), selectinload(Link.product))
            .where(Link.short_code == short_code)
        )
        return result.scalar_one_or_none()

    def check_link(self, link: Link | None) -> bool:
        """A link routes traffic only while it, and its partner, are active and unexpired."""
        if link is None:
            return False
        if link.status != LinkStatus.ACTIVE:
            return False
        if link.is_expired():
            return False
        return link.partner is not None and link.partner.status == PartnerStatus.ACTIVE

    async def is_link_valid(self, short_code: str) -> bool:
        return self.check_link(await self.resolve_short_code(short_code))

    async def increment_clicks(self, link_id: str) -> None:
        await self.db.execute(
            update(Link).where(Link.id == link_id).values(total_clicks=Link.total_clicks + 1)
        )

    async def increment_conversions(self, link_id: str) -> None:
        await self.db.execute(
            update(Link)
            .where(Link.id == link_id)
            .values(total_conversions=Link.total_conversions + 1)
        )

    async def update_link_status(self, link: Link, status: LinkStatus) -> Link:
        link.status = status
        await self.db.flush()
        logger.info(f"Link {link.short_code} status set to {status.value}")
        return link

    async def check_link_health(self, url: str) -> LinkHealth:
        if self.http_client is not None:
            return await self._check_url(self.http_client, url)

        async with httpx.AsyncClient(timeout=self.health_timeout) as client:
            return await self._check_url(client, url)

    async def _check_url(self, client: httpx.AsyncClient, url: str) -> LinkHealth:
        try:
            response = await client.head(url, follow_redirects=True, timeout=self.health_timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed for {url}: {e}")
            return LinkHealth(url=url, status=0, healthy=False)

        status = response.status_code
        return LinkHealth(url=url, status=status, healthy=200 <= status < 400)

    async def check_all_links_health(self) -> LinkHealthReport:
        result = await self.db.execute(select(Link).where(Link.status == LinkStatus.ACTIVE))
        links = list(result.scalars().all())
        if not links:
            return LinkHealthReport()

        semaphore = asyncio.Semaphore(settings.link_health_batch_size)

        async def check_one(client: httpx.AsyncClient, link: Link) -> tuple[Link, LinkHealth]:
            async with semaphore:
                return link, await self._check_url(client, link.original_url)

        if self.http_client is not None:
            results = await asyncio.gather(*(check_one(self.http_client, link) for link in links))
        else:
            async with httpx.AsyncClient(timeout=self.health_timeout) as client:
                results = await asyncio.gather(*(check_one(client, link) for link in links))

        unhealthy = [
            UnhealthyLink(id=link.id, short_code=link.short_code, url=health.url, status=health.status)
            for link, health in results
            if not health.healthy
        ]

        report = LinkHealthReport(
            total=len(results),
            healthy=len(results) - len(unhealthy),
            unhealthy=unhealthy,
        )
        logger.info(
            f"Link health check: {report.healthy}/{report.total} healthy, "
            f"{len(unhealthy)} unhealthy"
        )
        return report
