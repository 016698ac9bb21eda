import logging
import time

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from flipflow.errors import PaymentError
from flipflow.plans import PlanType
from flipflow.services import current_services
from flipflow.utils.messages import PAYMENT_NOT_CONFIGURED, PAYMENT_VERIFICATION_FAILED

bp = Blueprint("payments", __name__, url_prefix="/api/payments")
logger = logging.getLogger(__name__)


def _gateway():
    gateway = current_services().payments
    if gateway is None:
        logger.warning("Payment requested while payments are disabled")
    return gateway


@bp.route("/orders", methods=['POST'])
@login_required
def create_order():
    """Create a Razorpay order for the premium plan. The amount is fixed server side."""
    gateway = _gateway()
    if gateway is None:
        return jsonify({'error': str(PAYMENT_NOT_CONFIGURED)}), 503

    config = current_app.config
    receipt = f"flipflow_{current_user.id[:8]}_{int(time.time() * 1000)}"
    try:
        order = gateway.create_order(config['PREMIUM_PLAN_AMOUNT'], config['PAYMENT_CURRENCY'], receipt,
                                     notes={'user_id': current_user.id, 'plan': PlanType.PREMIUM.value})
    except PaymentError as e:
        return jsonify({'error': e.message}), e.status_code

    return jsonify({'order': order, 'key_id': gateway.key_id, 'email': current_user.email})


@bp.route("/verify", methods=['POST'])
@login_required
def verify():
    gateway = _gateway()
    if gateway is None:
        return jsonify({'error': str(PAYMENT_NOT_CONFIGURED)}), 503

    payload = request.get_json(silent=True) or {}
    result = gateway.verify_payment(payload.get('order_id') or payload.get('razorpay_order_id'),
                                    payload.get('payment_id') or payload.get('razorpay_payment_id'),
                                    payload.get('signature') or payload.get('razorpay_signature'))
    if not result.success:
        return jsonify({'success': False, 'message': str(PAYMENT_VERIFICATION_FAILED)}), 400

    # Only the user the order was created for may claim it
    try:
        order = gateway.fetch_order(result.order_id)
    except PaymentError as e:
        return jsonify({'error': e.message}), e.status_code
    if (order.get('notes') or {}).get('user_id') != current_user.id:
        logger.warning(f"User {current_user.id} submitted payment for order {result.order_id} of another user")
        return jsonify({'success': False, 'message': str(PAYMENT_VERIFICATION_FAILED)}), 403

    current_services().profiles.set_plan(current_user.id, PlanType.PREMIUM, token=current_user.access_token)
    logger.info(f"User {current_user.id} upgraded to premium (payment {result.payment_id})")
    return jsonify({'success': True, 'message': result.message, 'plan': PlanType.PREMIUM.value})
