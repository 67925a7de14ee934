# registrar/gateway.py

"""
PayMongo API client (payment intents).

Amounts are sent in centavos. Failures raise PaymentGatewayError with the
gateway's error detail when there is one.
"""

from decimal import Decimal
from django.conf import settings
import httpx
import logging

from utils.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

ALLOWED_PAYMENT_METHODS = ['card', 'gcash', 'paymaya', 'grab_pay']


class PayMongoClient:

    def __init__(self, secret_key=None, base_url=None, http_client=None, timeout=None):
        self.secret_key = secret_key if secret_key is not None else getattr(settings, 'PAYMONGO_SECRET_KEY', '')
        self.base_url = (base_url or getattr(settings, 'PAYMONGO_API_URL', 'https://api.paymongo.com/v1')).rstrip('/')
        self.http_client = http_client
        self.timeout = timeout or getattr(settings, 'INTEGRATION_HTTP_TIMEOUT', 10)

    def create_payment_intent(self, amount, description, metadata=None):
        """
        Create a payment intent.

        Args:
            amount (Decimal): Amount in pesos
            description (str): Shown on the checkout page
            metadata (dict): Echoed back in webhook events

        Returns:
            dict: The payment intent resource (``id``, ``attributes.client_key``, ...)

        Raises:
            PaymentGatewayError: If the key is missing or the call fails
        """
        if not self.secret_key:
            raise PaymentGatewayError("PayMongo secret key is not configured")

        body = {
            'data': {
                'attributes': {
                    'amount': int(Decimal(amount) * 100),
                    'currency': 'PHP',
                    'payment_method_allowed': ALLOWED_PAYMENT_METHODS,
                    'description': description,
                    'metadata': {key: str(value) for key, value in (metadata or {}).items()},
                }
            }
        }

        try:
            response = self._request('POST', '/payment_intents', json=body)
            response.raise_for_status()
            return response.json()['data']
        except httpx.HTTPStatusError as e:
            logger.error(f"PayMongo rejected payment intent: {e.response.status_code} {e.response.text}")
            raise PaymentGatewayError(f"Payment gateway returned {e.response.status_code}") from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"PayMongo payment intent call failed: {e}", exc_info=True)
            raise PaymentGatewayError("Payment service unavailable") from e

    def _request(self, method, path, **kwargs):
        auth = (self.secret_key, '')
        url = f"{self.base_url}{path}"
        if self.http_client is not None:
            return self.http_client.request(method, url, auth=auth, **kwargs)
        with httpx.Client(timeout=self.timeout) as client:
            return client.request(method, url, auth=auth, **kwargs)
