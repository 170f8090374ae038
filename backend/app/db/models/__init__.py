from .auth import *  # noqa
from .demand import *  # noqa
from .alerts import *  # noqa
from .settings import *  # noqa
