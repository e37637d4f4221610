"""
Payout settlement.

PayPal payouts are submitted to the PayPal Payouts API and the payout is
completed as soon as the batch is accepted. Bank transfers, checks and
network payments are settled by hand: the payout moves to processing and
is completed later with the reference of the manual transfer.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import NotFoundError, PaymentError, StateError
from affiliate_hub.models import Partner, PaymentMethod, Payout, PayoutStatus
from affiliate_hub.services.commission_service import CommissionService
from affiliate_hub.utils.helpers import utc_now

logger = logging.getLogger(__name__)

MANUAL_METHODS = (PaymentMethod.BANK_TRANSFER, PaymentMethod.CHECK, PaymentMethod.NETWORK)


@dataclass
class PaymentResult:
    success: bool
    provider: str
    payout: Payout
    transaction_id: str | None = None
    error: str | None = None
    requires_manual_action: bool = False


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"


class PayPalClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.client_id = settings.paypal_client_id
        self.client_secret = settings.paypal_client_secret
        self.api_url = settings.paypal_api_url
        self.timeout = settings.payment_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def send_payout(
        self,
        payout_id: str,
        receiver: str,
        amount: Decimal,
        currency: str = "USD",
    ) -> str:
        """
        Submit a single-item payout batch.

        Returns:
            PayPal's payout batch id.

        Raises:
            PaymentError: On missing credentials, a timeout or a rejected request.
        """
        if not self.client_id or not self.client_secret:
            raise PaymentError("PayPal credentials not configured")

        payload = {
            "sender_batch_header": {
                "sender_batch_id": f"payout_{payout_id}_{int(utc_now().timestamp())}",
                "email_subject": f"You have a payout from {settings.app_name}",
                "email_message": "Thank you for being an affiliate partner!",
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": f"{amount:.2f}", "currency": currency},
                    "receiver": receiver,
                    "note": f"Affiliate payout {payout_id}",
                    "sender_item_id": payout_id,
                }
            ],
        }

        try:
            async with self._client() as client:
                token = await self._get_access_token(client)
                response = await client.post(
                    "/v1/payments/payouts",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                return response.json()["batch_header"]["payout_batch_id"]
        except httpx.TimeoutException as e:
            logger.error(f"PayPal request timed out for payout {payout_id}")
            raise PaymentError("PayPal request timed out") from e
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(f"PayPal API error for payout {payout_id}: {message}")
            raise PaymentError(f"PayPal payout failed: {message}") from e
        except httpx.HTTPError as e:
            logger.error(f"PayPal request error for payout {payout_id}: {e}")
            raise PaymentError(f"PayPal request failed: {str(e)}") from e
        except (KeyError, ValueError) as e:
            logger.error(f"Unexpected PayPal response for payout {payout_id}: {e}")
            raise PaymentError("Unexpected PayPal response") from e


class PaymentService:
    def __init__(self, db: AsyncSession, paypal: PayPalClient | None = None):
        self.db = db
        self.paypal = paypal or PayPalClient()
        self.commissions = CommissionService(db)

    async def process_payment(self, payout_id: str) -> PaymentResult:
        """
        Settle a payout with the partner's payment method.

        A provider failure marks the payout failed and releases its
        conversions; the caller commits either outcome.
        """
        payout = await self.db.get(Payout, payout_id)
        if not payout:
            raise NotFoundError("Payout")
        if payout.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
            raise StateError(f"Cannot process a payout in status {payout.status.value}")

        if payout.payout_method in MANUAL_METHODS:
            if payout.status == PayoutStatus.PENDING:
                payout = await self.commissions.start_payout_processing(payout.id)
            logger.info(f"Payout {payout.id} awaits manual {payout.payout_method.value}")
            return PaymentResult(
                success=True,
                provider="manual",
                payout=payout,
                requires_manual_action=True,
            )

        partner = await self.db.get(Partner, payout.partner_id)
        try:
            if not partner or not partner.contact_email:
                raise PaymentError("Partner has no PayPal email configured")
            batch_id = await self.paypal.send_payout(
                payout.id, partner.contact_email, payout.total_commission
            )
        except PaymentError as e:
            payout = await self.commissions.fail_payout(payout.id, e.detail)
            return PaymentResult(success=False, provider="paypal", payout=payout, error=e.detail)

        payout = await self.commissions.complete_payout(payout.id, batch_id)
        return PaymentResult(success=True, provider="paypal", payout=payout, transaction_id=batch_id)
