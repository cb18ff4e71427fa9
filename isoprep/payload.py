from pathlib import Path
from typing import Sequence, Union

from .errors import PayloadNotFound

# In order of preference.
PAYLOAD_CANDIDATES: Sequence[str] = (
    'sources/install.wim',
    'sources/install.esd',
)


def locate(root: Union[str, Path], candidates: Sequence[str] = PAYLOAD_CANDIDATES) -> Path:
	root = Path(root)
	probed = [root / candidate for candidate in candidates]
	for path in probed:
		if path.is_file():
			print(f'Found installation payload {path!s}')
			return path
	raise PayloadNotFound(root, probed)
