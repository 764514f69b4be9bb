from flask import Blueprint

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")

# Route modules register on import
from . import webhooks  # noqa: E402,F401
