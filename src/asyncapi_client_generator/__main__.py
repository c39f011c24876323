"""Allow ``python -m asyncapi_client_generator``."""

from .cli import main

raise SystemExit(main())
