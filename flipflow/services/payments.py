"""
Razorpay payment gateway.

Orders are created server side with the key pair (basic auth); the checkout
widget returns ``order_id``, ``payment_id`` and a signature which is checked
here with HMAC-SHA256 before the plan is upgraded.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from flipflow.errors import ConfigurationError, PaymentError

logger = logging.getLogger(__name__)

ORDERS_URL = 'https://api.razorpay.com/v1/orders'


@dataclass
class PaymentVerification:
    success: bool
    message: str
    order_id: Optional[str] = None
    payment_id: Optional[str] = None


class RazorpayGateway:
    TIMEOUT = 10

    def __init__(self, key_id: Optional[str], key_secret: Optional[str],
                 session: Optional[requests.Session] = None):
        if not key_id or not key_secret:
            raise ConfigurationError('Razorpay credentials not configured')
        self.key_id = key_id
        self.key_secret = key_secret
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'RazorpayGateway':
        return cls(config.get('RAZORPAY_KEY_ID'), config.get('RAZORPAY_KEY_SECRET'))

    def create_order(self, amount: int, currency: str = 'INR', receipt: Optional[str] = None,
                     notes: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Create an order for ``amount`` in the currency's smallest unit.

        Returns:
            The order as returned by Razorpay (id, amount, currency, status, ...)

        Raises:
            PaymentError: gateway unreachable or order rejected
        """
        payload = {'amount': int(amount), 'currency': currency, 'receipt': receipt}
        if notes:
            payload['notes'] = notes
        logger.info(f"Payments: Creating order amount={amount} currency={currency} receipt={receipt}")

        try:
            response = self.session.post(ORDERS_URL, json=payload, auth=(self.key_id, self.key_secret),
                                         timeout=self.TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.error(f"Payments: Order request failed: {e}")
            raise PaymentError(f'Payment gateway unreachable: {e}') from e

        if not response.ok:
            logger.error(f"Payments: Razorpay API error {response.status_code}: {response.text[:200]}")
            raise PaymentError(f'Razorpay API error: {response.status_code}',
                               details={'status': response.status_code})

        order = response.json()
        logger.info(f"Payments: Order created {order.get('id')}")
        return order

    def fetch_order(self, order_id: str) -> Dict[str, Any]:
        """Order as stored by Razorpay, including the notes set at creation."""
        try:
            response = self.session.get(f'{ORDERS_URL}/{order_id}', auth=(self.key_id, self.key_secret),
                                        timeout=self.TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.error(f"Payments: Order lookup failed: {e}")
            raise PaymentError(f'Payment gateway unreachable: {e}') from e

        if not response.ok:
            logger.error(f"Payments: Razorpay API error {response.status_code} for order {order_id}")
            raise PaymentError(f'Razorpay API error: {response.status_code}',
                               details={'status': response.status_code})
        return response.json()

    def generate_signature(self, order_id: str, payment_id: str) -> str:
        message = f'{order_id}|{payment_id}'.encode('utf-8')
        return hmac.new(self.key_secret.encode('utf-8'), message, hashlib.sha256).hexdigest()

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> PaymentVerification:
        if not order_id or not payment_id or not signature:
            return PaymentVerification(False, 'Payment verification failed', order_id, payment_id)

        expected = self.generate_signature(order_id, payment_id)
        if hmac.compare_digest(expected, str(signature)):
            logger.info(f"Payments: Payment {payment_id} verified for order {order_id}")
            return PaymentVerification(True, 'Payment has been verified', order_id, payment_id)

        logger.warning(f"Payments: Signature mismatch for order {order_id}")
        return PaymentVerification(False, 'Payment verification failed', order_id, payment_id)
