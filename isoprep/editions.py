import re
import shutil
import subprocess
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pydantic
from typing_extensions import Annotated, Literal, Protocol

from .errors import EditionNotFound, IndexNotFound, InspectionFailed, NoImagesFound
from .lib import warn


class ImageDescriptor(pydantic.BaseModel):
	model_config = pydantic.ConfigDict(frozen=True)

	index: int
	name: str
	edition_id: str = ''
	description: str = ''


class ExplicitIndex(pydantic.BaseModel):
	policy: Literal['index'] = 'index'
	index: int


class PreferredEdition(pydantic.BaseModel):
	policy: Literal['edition'] = 'edition'
	edition: str


class FirstAvailable(pydantic.BaseModel):
	policy: Literal['first'] = 'first'


SelectionPolicy = Annotated[Union[ExplicitIndex, PreferredEdition, FirstAvailable],
                            pydantic.Field(discriminator='policy')]


class ImageInspector(Protocol):
	def list_images(self, payload: Path) -> List[ImageDescriptor]:
		...


class WimlibInspector(object):
	def __init__(self, executable: str = 'wimlib-imagex'):
		self.executable = executable

	def list_images(self, payload: Path) -> List[ImageDescriptor]:
		if shutil.which(self.executable) is None:
			raise InspectionFailed(f'Unable to inspect {payload!s}: {self.executable} was not found.')
		try:
			proc = subprocess.run([self.executable, 'info', str(payload), '--xml'],
			                      check=True,
			                      stdout=subprocess.PIPE,
			                      stderr=subprocess.PIPE)
		except subprocess.CalledProcessError as e:
			raise InspectionFailed(
			    f'Unable to inspect {payload!s}: {self.executable} exited with status {e.returncode}\n'
			    f'{e.stderr.decode("utf8", errors="replace")}'
			) from e
		return parse_catalog(proc.stdout)


def parse_catalog(data: Union[bytes, str]) -> List[ImageDescriptor]:
	if isinstance(data, bytes):
		# wimlib emits the catalog in its native UTF-16LE encoding.
		if data.startswith((b'\xff\xfe', b'\xfe\xff')):
			data = data.decode('utf-16')
		else:
			data = data.decode('utf8', errors='replace')
	data = re.sub(r'^\s*<\?xml[^>]*\?>', '', data.lstrip('\ufeff'))
	try:
		root = ET.fromstring(data)
	except ET.ParseError as e:
		raise InspectionFailed(f'Unable to parse image catalog: {e!s}') from e

	images: List[ImageDescriptor] = []
	for image in root.iter('IMAGE'):
		try:
			index = int(image.get('INDEX', ''))
		except ValueError as e:
			raise InspectionFailed(f'Image catalog entry has an invalid index: {image.get("INDEX")!r}') from e
		images.append(
		    ImageDescriptor(
		        index=index,
		        name=(image.findtext('NAME') or image.findtext('DISPLAYNAME') or '').strip(),
		        edition_id=(image.findtext('WINDOWS/EDITIONID') or image.findtext('FLAGS') or '').strip(),
		        description=(image.findtext('DESCRIPTION') or '').strip(),
		    )
		)
	return images


def enumerate_images(payload: Union[str, Path], inspector: Optional[ImageInspector] = None) -> List[ImageDescriptor]:
	if inspector is None:
		inspector = WimlibInspector()
	images = inspector.list_images(Path(payload))
	if not images:
		raise NoImagesFound(payload)
	return images


def select_image(images: Sequence[ImageDescriptor], policy: SelectionPolicy) -> ImageDescriptor:
	if not images:
		raise NoImagesFound('<empty catalog>')
	if isinstance(policy, ExplicitIndex):
		for image in images:
			if image.index == policy.index:
				return image
		raise IndexNotFound(policy.index, [image.index for image in images])
	if isinstance(policy, PreferredEdition):
		for image in images:
			if image.edition_id == policy.edition:
				return image
		# Not fatal: fall back to the first image.
		warn(f'{EditionNotFound(policy.edition, [image.edition_id for image in images])!s}. '
		     f'Using index {images[0].index} ({images[0].name}).')
	return images[0]


def format_catalog(images: Sequence[ImageDescriptor]) -> str:
	lines = []
	for image in images:
		line = f'  [{image.index}] {image.name}'
		if image.edition_id:
			line += f' ({image.edition_id})'
		lines.append(line)
		if image.description and image.description != image.name:
			lines.append(f'      {image.description}')
	return '\n'.join(lines)
