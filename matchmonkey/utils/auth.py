"""Subsonic token authentication"""

import hashlib
import secrets
from typing import Dict

CLIENT_NAME = "MatchMonkey"
API_VERSION = "1.16.1"


def subsonic_auth_params(username: str, password: str, client: str = CLIENT_NAME,
                         api_version: str = API_VERSION) -> Dict[str, str]:
    """Build salted-token authentication parameters for a Subsonic request.

    A fresh salt is drawn for every call.

    Args:
        username: Subsonic username
        password: Subsonic password
        client: Client name reported to the server
        api_version: Subsonic REST API version

    Returns:
        Query parameters u, t, s, v, c and f
    """
    salt = secrets.token_hex(6)
    token = hashlib.md5(f"{password}{salt}".encode()).hexdigest()
    return {
        "u": username,
        "t": token,
        "s": salt,
        "v": api_version,
        "c": client,
        "f": "json",
    }
