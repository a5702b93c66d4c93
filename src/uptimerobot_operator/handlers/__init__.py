"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import account  # noqa: F401
from . import contact  # noqa: F401
from . import maintenance_window  # noqa: F401
from . import monitor  # noqa: F401
from . import monitor_group  # noqa: F401
from . import slack_integration  # noqa: F401
