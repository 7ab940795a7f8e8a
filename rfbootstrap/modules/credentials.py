"""RapidFort credentials file handling."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Union

from .errors import CredentialsError, CredentialsFailure

logger = logging.getLogger("rfbootstrap.credentials")

REQUIRED_FIELDS = ('access_id', 'secret_key', 'rf_root_url')


@dataclass(frozen=True)
class Credentials:
    access_id: str
    secret_key: str = field(repr=False)
    root_url: str = ''

    def as_secret_data(self) -> Dict[str, str]:
        """Key names expected by the runtime chart's credentials secret."""
        return {
            'RF_ACCESS_ID': self.access_id,
            'RF_SECRET_ACCESS_KEY': self.secret_key,
            'RF_ROOT_URL': self.root_url,
        }


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1].strip()
    return value


def parse_credentials(text: str) -> Dict[str, str]:
    """Parse ``key=value`` lines into a dict.

    Blank lines and ``#`` comments are skipped; only the first ``=`` splits.
    """
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        values[key.strip()] = _unquote(value.strip())
    return values


def exists(path: Union[str, Path]) -> bool:
    return Path(path).is_file()


def load(path: Union[str, Path]) -> Credentials:
    """Load and validate the credentials file.

    Raises:
        CredentialsError: MISSING when the file is absent, INCOMPLETE when any
            required field is empty.
    """
    path = Path(path)
    if not path.is_file():
        raise CredentialsError(
            CredentialsFailure.MISSING,
            f"RapidFort credentials not found at {path}",
        )

    values = parse_credentials(path.read_text(encoding='utf-8'))
    missing = [key for key in REQUIRED_FIELDS if not values.get(key)]
    if missing:
        raise CredentialsError(
            CredentialsFailure.INCOMPLETE,
            f"Invalid or incomplete RapidFort credentials in {path} (missing: {', '.join(missing)})",
            missing_fields=missing,
        )

    logger.debug(f"Loaded RapidFort credentials from {path}")
    return Credentials(
        access_id=values['access_id'],
        secret_key=values['secret_key'],
        root_url=values['rf_root_url'],
    )
