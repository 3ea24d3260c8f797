"""Docker secrets support for API keys and passwords"""

import logging
import os
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

SECRETS_DIR = Path(os.getenv("MATCHMONKEY_SECRETS_DIR", "/run/secrets"))


def load_secret(secret_name: str, default: Optional[str] = None) -> Optional[str]:
    """Load a secret from a secrets file or the environment.

    The file ``<SECRETS_DIR>/<secret_name lowercased>`` wins over the
    environment variable of the same name.

    Args:
        secret_name: Name of the secret/environment variable
        default: Value returned when neither source is set

    Returns:
        Secret value or default
    """
    secret_path = SECRETS_DIR / secret_name.lower()
    if secret_path.is_file():
        try:
            value = secret_path.read_text(encoding="utf-8").strip()
            if value:
                return value
        except OSError as e:
            logger.warning("Cannot read secret file %s: %s", secret_path, e)

    value = os.getenv(secret_name)
    return value if value else default
