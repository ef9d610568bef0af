from .headers import init_security  # noqa: F401
