from .server import (
	BoundAddress,
	ListenOptions,
	Server,
	ServerConfig,
	run,
)  # NOQA: F401
from .handlers import IncludeFile, IncludeURL, IncludeVirtual, includes  # NOQA: F401
from .ssi import Directive, Handler, SSIContext, SSIError  # NOQA: F401
from .utils.files import contentType  # NOQA: F401


# EOF
