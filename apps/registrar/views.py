# registrar/views.py

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
import json
import logging

from registrar.payments import PaymentService
from utils.context import get_client_ip

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT GATEWAY WEBHOOK
# =============================================================================

@csrf_exempt
@require_POST
def payment_webhook(request):
    """
    PayMongo webhook receiver.

    Responds 401 on a bad signature and 400 on an unreadable body. Every
    other delivery gets 200 with the processing outcome so the gateway
    stops retrying; failures are kept on the PaymentWebhook log.
    """
    signature = request.headers.get('Paymongo-Signature', '')
    if not PaymentService.verify_webhook_signature(request.body, signature):
        logger.warning(f"Webhook with invalid signature from {get_client_ip(request)}")
        return JsonResponse({'error': 'Invalid signature'}, status=401)

    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JsonResponse({'error': 'Invalid JSON'}, status=400)

    result = PaymentService().handle_webhook(payload)

    return JsonResponse({'status': result.status, 'message': result.message})
