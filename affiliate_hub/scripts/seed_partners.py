"""
Seed a demo partner, product and tracking link, and print an admin token.
Run with: python -m affiliate_hub.scripts.seed_partners
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from affiliate_hub.core.security import create_admin_token
from affiliate_hub.database import async_session
from affiliate_hub.models import CommissionType, Partner, PartnerStatus, Product
from affiliate_hub.services import LinkService
from affiliate_hub.utils.crypto import generate_api_key

DEMO_SLUG = "genomics-cloud"


async def seed_partners():
    """Create the demo partner if it does not exist yet."""
    async with async_session() as session:
        result = await session.execute(select(Partner).where(Partner.slug == DEMO_SLUG))
        existing = result.scalar_one_or_none()

        if existing:
            print("Demo partner already exists:")
            print(f"  ID: {existing.id}")
            print(f"  Slug: {existing.slug}")
        else:
            partner = Partner(
                company_name="Genomics Cloud",
                slug=DEMO_SLUG,
                contact_email="partners@genomics-cloud.example",
                commission_type=CommissionType.TIERED,
                commission_rate=Decimal("10"),
                status=PartnerStatus.ACTIVE,
                min_payout_threshold=Decimal("50"),
                cookie_duration_days=30,
                api_key=generate_api_key(),
            )
            session.add(partner)
            await session.flush()

            product = Product(
                partner_id=partner.id,
                name="Sequence Aligner Pro",
                slug="aligner-pro",
                affiliate_url="https://genomics-cloud.example/aligner-pro",
                tags=["alignment", "ngs"],
            )
            session.add(product)
            await session.flush()

            link = await LinkService(session).create_link(
                partner_id=partner.id,
                original_url=product.affiliate_url,
                product_id=product.id,
                utm_campaign="launch",
            )
            await session.commit()

            print("Demo partner created successfully!")
            print(f"  Partner ID: {partner.id}")
            print(f"  API key: {partner.api_key}")
            print(f"  Short URL: {link.short_url}")

    print("")
    print(f"Admin token: {create_admin_token('seed-admin')}")


if __name__ == "__main__":
    asyncio.run(seed_partners())
