# vpnportal/services/completion.py
import logging
from datetime import datetime

from vpnportal.extensions import db
from vpnportal.models.subscription import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def complete_payment(payment, now=None):
    """
    Grant the plan for a successful payment.

    Extends the user's current subscription by the plan duration (stacking
    renewals on the existing expiry), or opens a new one starting now. A
    payment already linked to a subscription has been completed and is left
    alone, so replays never extend twice. Runs inside the caller's
    transaction; nothing is committed here.
    """
    if not payment.successful:
        return None

    if payment.subscription_id is not None:
        return payment.subscription

    now = now or datetime.utcnow()
    plan = payment.plan
    duration = plan.duration()

    subscription = (
        Subscription.current_for(payment.user, now=now)
        .order_by(Subscription.expires_at.desc())
        .with_for_update()
        .first()
    )

    if subscription is None:
        subscription = Subscription(
            user=payment.user,
            plan=plan,
            started_at=now,
            expires_at=now + duration,
            status=SubscriptionStatus.ACTIVE,
        )
        db.session.add(subscription)
        logger.info("Subscription opened for user %s until %s (payment %s)",
                    payment.user_id, subscription.expires_at, payment.id)
    else:
        subscription.expires_at = subscription.expires_at + duration
        subscription.status = SubscriptionStatus.ACTIVE
        logger.info("Subscription %s extended to %s (payment %s)",
                    subscription.id, subscription.expires_at, payment.id)

    payment.subscription = subscription
    if payment.paid_at is None:
        payment.paid_at = now

    db.session.flush()
    return subscription
