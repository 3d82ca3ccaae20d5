from accounts.views.auth_handlers import (
    change_icon as change_icon,
)
from accounts.views.auth_handlers import (
    change_nickname as change_nickname,
)
from accounts.views.auth_handlers import (
    login as login,
)
from accounts.views.auth_handlers import (
    profile as profile,
)
from accounts.views.auth_handlers import (
    register as register,
)
from accounts.views.auth_handlers import (
    verify_session as verify_session,
)
from accounts.views.ranking_handlers import rankings as rankings
from accounts.views.ranking_handlers import update_trophies as update_trophies
from accounts.views.responses import broker_error_handler as broker_error_handler
from accounts.views.responses import internal_error_handler as internal_error_handler
