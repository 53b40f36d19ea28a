"""Re-encrypt stored tokens under the active key version.

Run after adding a key to ``GHL_TOKEN_ENC_KEYRING`` and pointing
``GHL_TOKEN_ENC_KEY_ACTIVE`` at it. Once a rerun reports zero rows
the old key can be dropped from the ring::

    python -m scripts.rotate_token_keys
"""

from __future__ import annotations

import argparse
import sys

from app.core.config import get_settings
from app.core.errors import TokenError
from app.core.logging import configure_logging
from app.dependencies.clients import get_highlevel_token_service

EXIT_OK = 0
EXIT_ROTATION_ERROR = 1


def main(argv: list[str] | None = None) -> int:
    argparse.ArgumentParser(description=__doc__.splitlines()[0]).parse_args(argv)
    configure_logging(get_settings().log_level)

    try:
        updated = get_highlevel_token_service().rotate_encryption()
    except TokenError as exc:
        print(f"Rotation failed: {exc.message}", file=sys.stderr)
        return EXIT_ROTATION_ERROR

    print(f"Re-encrypted {updated} token rows.")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
