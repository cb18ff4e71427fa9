import hashlib
import os
import shutil
import subprocess
import urllib.parse
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import requests
import tqdm
from typing_extensions import Protocol

from .errors import ChecksumMismatch, DownloadFailed, SourceNotFound
from .lib import warn

DOWNLOAD_NAME = 'source.iso'
BLOCK_SIZE = 1024**2

# requests proxy keys and the aria2c options carrying the same setting.
ARIA2_PROXY_OPTIONS = {
    'http': '--http-proxy',
    'https': '--https-proxy',
    'no_proxy': '--no-proxy',
}


class Fetcher(Protocol):
	name: str

	def fetch(self, url: str, dest: Path) -> None:
		...


class ParallelFetcher(object):
	name = 'aria2c'

	def __init__(
	    self,
	    executable: str = 'aria2c',
	    connections: int = 16,
	    min_split_size: str = '1M',
	    max_tries: int = 5,
	    retry_wait: int = 5,
	    proxies: Optional[Mapping[str, str]] = None,
	):
		self.executable = executable
		self.connections = connections
		self.min_split_size = min_split_size
		self.max_tries = max_tries
		self.retry_wait = retry_wait
		self.proxies: Dict[str, str] = dict(proxies or {})

	def available(self) -> bool:
		return shutil.which(self.executable) is not None

	def fetch(self, url: str, dest: Path) -> None:
		argv = [
		    self.executable,
		    f'--max-connection-per-server={self.connections}',
		    f'--split={self.connections}',
		    f'--min-split-size={self.min_split_size}',
		    f'--max-tries={self.max_tries}',
		    f'--retry-wait={self.retry_wait}',
		    '--continue=true',
		    f'--dir={dest.parent!s}',
		    f'--out={dest.name}',
		]
		for key, option in ARIA2_PROXY_OPTIONS.items():
			if key in self.proxies:
				argv.append(f'{option}={self.proxies[key]}')
		argv.append(url)
		subprocess.run(argv, check=True)


class StreamFetcher(object):
	name = 'requests'

	def __init__(
	    self, block_size: int = BLOCK_SIZE, timeout: float = 60, proxies: Optional[Mapping[str, str]] = None
	):
		self.block_size = block_size
		self.timeout = timeout
		self.proxies: Dict[str, str] = dict(proxies or {})

	def fetch(self, url: str, dest: Path) -> None:
		rsp = requests.get(url, stream=True, timeout=self.timeout, proxies=self.proxies or None)
		rsp.raise_for_status()
		try:
			size: Optional[int] = int(rsp.headers.get('Content-Length', ''))
		except ValueError:
			size = None  # Unknown or malformed.
		with tqdm.tqdm(total=size, unit='B', unit_scale=True, delay=3) as progress:
			with open(dest, 'wb', buffering=self.block_size) as fd:
				for chunk in rsp.iter_content(self.block_size):
					fd.write(chunk)
					progress.update(len(chunk))


def available_fetchers(proxies: Optional[Mapping[str, str]] = None) -> List[Fetcher]:
	fetchers: List[Fetcher] = []
	parallel = ParallelFetcher(proxies=proxies)
	if parallel.available():
		fetchers.append(parallel)
	fetchers.append(StreamFetcher(proxies=proxies))
	return fetchers


def is_url(locator: str) -> bool:
	return urllib.parse.urlsplit(locator).scheme.lower() in ('http', 'https')


def file_sha256(path: Union[str, Path], block_size: int = BLOCK_SIZE) -> str:
	path = Path(path)
	hasher = hashlib.sha256()
	with tqdm.tqdm(total=path.stat().st_size, unit='B', unit_scale=True, delay=3, desc='verify') as progress:
		with open(path, 'rb') as fd:
			for block in iter(lambda: fd.read(block_size), b''):
				hasher.update(block)
				progress.update(len(block))
	return hasher.hexdigest()


def _discard(path: Path) -> None:
	try:
		path.unlink()
	except FileNotFoundError:
		pass


def download(url: str, dest: Path, fetchers: Sequence[Fetcher]) -> Path:
	errors: List[str] = []
	for fetcher in fetchers:
		print(f'Downloading {url} to {dest!s} using {fetcher.name}')
		try:
			fetcher.fetch(url, dest)
		except (OSError, subprocess.SubprocessError, requests.RequestException) as e:
			warn(f'Download using {fetcher.name} failed: {e!s}')
			errors.append(f'{fetcher.name}: {e!s}')
			continue
		if dest.is_file() and dest.stat().st_size > 0:
			return dest
		errors.append(f'{fetcher.name}: no data was written')
	_discard(dest)
	raise DownloadFailed(url, dest, '; '.join(errors) or 'no download strategy available')


def acquire(
    locator: str,
    dest_dir: Union[str, Path],
    sha256: Optional[str] = None,
    fetchers: Optional[Sequence[Fetcher]] = None,
    proxies: Optional[Mapping[str, str]] = None,
) -> Path:
	if is_url(locator):
		dest = Path(dest_dir) / DOWNLOAD_NAME
		download(locator, dest, available_fetchers(proxies) if fetchers is None else fetchers)
		if sha256:
			actual = file_sha256(dest)
			if actual.lower() != sha256.lower():
				_discard(dest)
				raise ChecksumMismatch(dest, sha256, actual, source=locator, deleted=True)
		return dest

	path = Path(os.path.abspath(locator))
	if not path.is_file():
		raise SourceNotFound(path)
	if sha256:
		actual = file_sha256(path)
		if actual.lower() != sha256.lower():
			raise ChecksumMismatch(path, sha256, actual)
	print(f'Using local source {path!s}')
	return path
