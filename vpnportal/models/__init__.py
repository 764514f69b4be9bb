from .plan import Plan
from .user import User
from .subscription import Subscription, SubscriptionStatus
from .payment import Payment, PaymentStatus, map_webhook_status
from .webhook_log import WebhookLog
from .commission import Commission, CommissionStatus
from .affiliate_click import AffiliateClick
from .affiliate import Affiliate, AffiliateStatus
from .referral import Referral, ReferralStatus

__all__ = [
    "Plan",
    "User",
    "Subscription",
    "SubscriptionStatus",
    "Payment",
    "PaymentStatus",
    "map_webhook_status",
    "WebhookLog",
    "Commission",
    "CommissionStatus",
    "AffiliateClick",
    "Affiliate",
    "AffiliateStatus",
    "Referral",
    "ReferralStatus",
]
