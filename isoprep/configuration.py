import os
from pathlib import Path
from typing import Dict, Optional, Union

import pydantic
import requests
import yaml

from .editions import ExplicitIndex, FirstAvailable, ImageDescriptor, PreferredEdition, SelectionPolicy
from .errors import ConfigurationError
from .workspace import Workspace


class ProxyConfig(pydantic.BaseModel):
	http_proxy: Optional[str] = None
	https_proxy: Optional[str] = None
	no_proxy: Optional[str] = None

	def as_requests(self) -> Dict[str, str]:
		# An empty string forces a direct connection for that scheme.
		proxies: Dict[str, str] = {}
		for key, val in (('http', self.http_proxy), ('https', self.https_proxy), ('no_proxy', self.no_proxy)):
			if val is not None:
				proxies[key] = val
		return proxies


class BuildOptions(pydantic.BaseModel):
	source: str
	output: Path
	workspace: Path = Path('isoprep-work')
	sha256: Optional[str] = None
	index: Optional[int] = None
	edition: Optional[str] = None
	retain_workspace: bool = False
	proxies: ProxyConfig = ProxyConfig()

	# Passed through to the build operation untouched.
	copy_output: bool = False
	inject_drivers: bool = False
	driver_path: Optional[Path] = None
	import_drivers: bool = False
	disable_wpbt: bool = False
	allow_unsupported_hardware: bool = False
	skip_first_logon_animation: bool = False
	copy_virtio: bool = False
	answer_file: Optional[Path] = None
	username: str = 'User'
	password: Optional[str] = pydantic.Field(default=None, repr=False)
	legacy_format: bool = False

	@pydantic.model_validator(mode='after')
	def _check_drivers(self) -> 'BuildOptions':
		if self.inject_drivers and self.driver_path is None:
			raise ValueError('driver_path is required when inject_drivers is set')
		return self

	def policy(self) -> SelectionPolicy:
		if self.index is not None:
			return ExplicitIndex(index=self.index)
		if self.edition:
			return PreferredEdition(edition=self.edition)
		return FirstAvailable()


class ResolvedConfiguration(pydantic.BaseModel):
	model_config = pydantic.ConfigDict(frozen=True)

	index: int
	name: str
	edition_id: str
	payload_path: Path
	mount_dir: Path
	scratch_dir: Path
	output_path: Path
	copy_output: bool
	inject_drivers: bool
	driver_path: Optional[Path]
	import_drivers: bool
	disable_wpbt: bool
	allow_unsupported_hardware: bool
	skip_first_logon_animation: bool
	copy_virtio: bool
	answer_file: Optional[Path]
	username: str
	password: Optional[str] = pydantic.Field(default=None, repr=False)
	legacy_format: bool


def _absolute(path: Optional[Path]) -> Optional[Path]:
	if path is None:
		return None
	return Path(os.path.abspath(path))


def resolve(
    options: BuildOptions, workspace: Workspace, payload: Path, image: ImageDescriptor
) -> ResolvedConfiguration:
	return ResolvedConfiguration(
	    index=image.index,
	    name=image.name,
	    edition_id=image.edition_id,
	    payload_path=_absolute(payload),
	    mount_dir=_absolute(workspace.mount_dir),
	    scratch_dir=_absolute(workspace.scratch_dir),
	    output_path=_absolute(options.output),
	    copy_output=options.copy_output,
	    inject_drivers=options.inject_drivers,
	    driver_path=_absolute(options.driver_path),
	    import_drivers=options.import_drivers,
	    disable_wpbt=options.disable_wpbt,
	    allow_unsupported_hardware=options.allow_unsupported_hardware,
	    skip_first_logon_animation=options.skip_first_logon_animation,
	    copy_virtio=options.copy_virtio,
	    answer_file=_absolute(options.answer_file),
	    username=options.username,
	    password=options.password,
	    legacy_format=options.legacy_format,
	)


def load_options(location: Union[str, Path], overrides: Optional[Dict[str, object]] = None) -> BuildOptions:
	location = str(location)
	# Acquire the options document.
	if '://' in location:
		try:
			r = requests.get(location, timeout=30)
		except requests.RequestException as e:
			raise ConfigurationError(f'Unable to fetch options from {location}: {e!s}') from e
		if r.status_code != 200:
			raise ConfigurationError(f'Unable to fetch options from {location}: HTTP {r.status_code}')
		raw_data = r.content
	elif Path(location).is_file():
		try:
			raw_data = Path(location).read_bytes()
		except OSError as e:
			raise ConfigurationError(f'Unable to load options from {location}: {e!s}') from e
	else:
		raise ConfigurationError(f'Unable to locate options file {location}')

	try:
		raw_options = yaml.safe_load(raw_data)
	except yaml.YAMLError as e:
		raise ConfigurationError(f'Unable to parse options from {location}: {e!s}') from e
	if raw_options is None:
		raw_options = {}
	if not isinstance(raw_options, dict):
		raise ConfigurationError('The options file must be a yaml mapping object.')
	raw_options.update(overrides or {})

	try:
		return BuildOptions(**raw_options)
	except pydantic.ValidationError as e:
		raise ConfigurationError(str(e)) from e

