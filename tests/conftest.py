"""
Shared fixtures for the isoprep tests.

Nothing here needs root, network access or wimlib: mounting, image
inspection and the build operation are replaced with in-process fakes.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from isoprep.configuration import ResolvedConfiguration
from isoprep.editions import ImageDescriptor


class FakeMounter(object):
	"""Serves a prepared directory as the mounted image root."""

	def __init__(self, media: Optional[Path], fail_unmount: bool = False):
		self.media = media
		self.fail_unmount = fail_unmount
		self.mounted: List[Path] = []
		self.unmounted: List[Path] = []

	@property
	def closed(self) -> bool:
		return len(self.unmounted) == len(self.mounted)

	def mount(self, image: Path, mountpoint: Path) -> Path:
		self.mounted.append(image)
		return self.media

	def unmount(self, root: Path) -> None:
		self.unmounted.append(root)
		if self.fail_unmount:
			raise OSError('target is busy')


class FakeInspector(object):
	def __init__(self, images: List[ImageDescriptor]):
		self.images = images
		self.calls: List[Path] = []

	def list_images(self, payload: Path) -> List[ImageDescriptor]:
		self.calls.append(payload)
		return list(self.images)


class RecordingBuild(object):
	def __init__(self, error: Optional[BaseException] = None):
		self.error = error
		self.calls: List[ResolvedConfiguration] = []

	def __call__(self, configuration: ResolvedConfiguration) -> None:
		self.calls.append(configuration)
		if self.error is not None:
			raise self.error


@pytest.fixture
def descriptors() -> List[ImageDescriptor]:
	return [
	    ImageDescriptor(index=1, name='Windows 11 Home', edition_id='Core'),
	    ImageDescriptor(index=2, name='Windows 11 Pro', edition_id='Professional'),
	    ImageDescriptor(index=3, name='Windows 11 Education', edition_id='Education'),
	]


@pytest.fixture
def media(tmp_path: Path) -> Path:
	"""A directory laid out like installation media."""
	root = tmp_path / 'media'
	(root / 'sources').mkdir(parents=True)
	(root / 'sources' / 'install.wim').write_bytes(b'MSWIM\0\0\0payload')
	(root / 'sources' / 'boot.wim').write_bytes(b'MSWIM\0\0\0boot')
	(root / 'setup.exe').write_bytes(b'MZ')
	return root


@pytest.fixture
def source_image(tmp_path: Path) -> Path:
	path = tmp_path / 'installer.iso'
	path.write_bytes(b'\0' * 4096)
	return path


@pytest.fixture
def mounter(media: Path) -> FakeMounter:
	return FakeMounter(media)
