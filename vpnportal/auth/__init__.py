from vpnportal.extensions import db, login_manager
from vpnportal.models import User


@login_manager.user_loader
def load_user(user_id):
    user = db.session.get(User, int(user_id))
    if user is None or user.is_deleted:
        return None
    return user
