import logging

from flask import Blueprint, render_template
from flask_login import current_user

from flipflow.plans import PLAN_LIMITS, PlanType
from flipflow.services import current_services
from flipflow.services.plan_manager import PlanManager

bp = Blueprint("main", __name__)
logger = logging.getLogger(__name__)


@bp.route("/")
def index():
    try:
        featured = current_services().flipbooks.list_public()[:6]
    except Exception as e:
        logger.warning(f"Could not load public flipbooks for landing page: {e}")
        featured = []
    return render_template("index.html", featured=featured)


@bp.route("/product")
def product():
    return render_template("product.html", title='Product')


@bp.route("/pricing")
def pricing():
    gateway = current_services().payments
    usage = None
    if current_user.is_authenticated:
        usage = PlanManager.get_usage_summary(current_services().flipbooks.plan_context(current_user))
    return render_template("pricing.html", title='Pricing', plans=PLAN_LIMITS,
                           free=PlanType.FREE, premium=PlanType.PREMIUM, usage=usage,
                           razorpay_key_id=gateway.key_id if gateway else None)


@bp.route("/resources")
def resources():
    return render_template("resources.html", title='Resources')
