"""
Order Oracle - проверка оплаты заказа через WooCommerce REST API.

DRY Principle: Единственное место для HTTP запросов к магазину.
Every outcome, including network failures, comes back as a
``VerificationResult``; callers branch on ``reason``.
"""

import httpx
import logging
from typing import Optional, Dict, Any, Iterable

import config

from ..schemas import VerificationReason, VerificationResult
from .credential_store import CredentialStore, WOOCOMMERCE

logger = logging.getLogger("order_oracle")


class WooCommerceOrderOracle:
    """Verifies that an order exists, belongs to an email, and is paid."""

    def __init__(self, credential_store: CredentialStore, timeout: float = None,
                 paid_statuses: Iterable[str] = None, api_version: str = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the oracle.

        Args:
            credential_store: Source of the store URL and consumer key/secret
            timeout: Request timeout in seconds
            paid_statuses: Order statuses that count as paid
            api_version: WooCommerce REST namespace (e.g. wc/v3)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.credential_store = credential_store
        self.timeout = timeout if timeout is not None else config.ORDER_VERIFY_TIMEOUT
        self.paid_statuses = tuple(s.lower() for s in (paid_statuses or config.PAID_ORDER_STATUSES))
        self.api_version = api_version or config.WOOCOMMERCE_API_VERSION
        self.transport = transport
        self.request_counter = {"verified": 0, "rejected": 0, "failure": 0}

    def _order_url(self, store_url: str, order_id: str) -> str:
        return f"{store_url.rstrip('/')}/wp-json/{self.api_version}/orders/{order_id}"

    async def fetch_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a raw order.

        Returns:
            Order JSON, or None when the store answers 404

        Raises:
            httpx.HTTPError, ValueError: transport failures, bad status, bad body
            LookupError: commerce configuration missing
        """
        configuration = self.credential_store.get(WOOCOMMERCE)
        if configuration is None or not configuration.url:
            raise LookupError("WooCommerce configuration is missing")

        auth = (
            configuration.credentials.get("consumer_key", ""),
            configuration.credentials.get("consumer_secret", ""),
        )

        logger.info(f"🔎 Fetching WooCommerce order {order_id}")
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self._order_url(configuration.url, order_id), auth=auth)

        if response.status_code == 404:
            return None
        response.raise_for_status()

        order = response.json()
        if not isinstance(order, dict):
            raise ValueError("unexpected order payload")
        return order

    async def verify(self, order_id: str, email: str) -> VerificationResult:
        """
        Check an order against the email the user claimed.

        Args:
            order_id: Numeric WooCommerce order id
            email: Email the user entered

        Returns:
            VerificationResult with paid flag and reason code
        """
        try:
            order = await self.fetch_order(order_id)
        except httpx.TimeoutException as e:
            return self._failure(order_id, f"timeout after {self.timeout}s: {e}")
        except (httpx.HTTPError, ValueError) as e:
            return self._failure(order_id, str(e))
        except LookupError as e:
            logger.error(f"❌ Cannot verify order {order_id}: {e}")
            return self._failure(order_id, str(e))

        if order is None:
            logger.info(f"Order not found: {order_id}")
            return self._rejected(VerificationReason.NOT_FOUND)

        order_email = str((order.get("billing") or {}).get("email") or "")
        status = str(order.get("status") or "").lower()

        if order_email.lower() != email.lower():
            logger.info(f"Email mismatch for order {order_id}")
            return self._rejected(VerificationReason.EMAIL_MISMATCH,
                                  order_email=order_email, order_status=status)

        if status not in self.paid_statuses:
            logger.info(f"Order not paid: {order_id} (status={status})")
            return self._rejected(VerificationReason.UNPAID,
                                  order_email=order_email, order_status=status)

        self.request_counter["verified"] += 1
        logger.info(f"✅ Order {order_id} verified (status={status})")
        return VerificationResult.verified(order_email=order_email, order_status=status)

    def _rejected(self, reason: VerificationReason, **kwargs) -> VerificationResult:
        self.request_counter["rejected"] += 1
        return VerificationResult.rejected(reason, **kwargs)

    def _failure(self, order_id: str, detail: str) -> VerificationResult:
        self.request_counter["failure"] += 1
        logger.warning(f"⚠️ Order verification failed for {order_id}: {detail}")
        return VerificationResult.rejected(VerificationReason.TRANSIENT_ERROR, detail=detail)

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.request_counter, total=sum(self.request_counter.values()))
