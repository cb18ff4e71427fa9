from pathlib import Path
from typing import Iterable, Optional, Sequence, Union


class PipelineError(Exception):
	pass


class ConfigurationError(PipelineError):
	pass


class SourceNotFound(PipelineError):
	def __init__(self, path: Union[str, Path]):
		self.path = str(path)
		super().__init__(f'Source image not found or not a regular file: {self.path}')


class DownloadFailed(PipelineError):
	def __init__(self, source: str, dest: Union[str, Path], reason: str = ''):
		self.source = source
		self.dest = str(dest)
		message = f'Unable to download {source} to {self.dest}'
		if reason:
			message += f': {reason}'
		super().__init__(message)


class ChecksumMismatch(PipelineError):
	def __init__(
	    self, path: Union[str, Path], expected: str, actual: str, source: Optional[str] = None, deleted: bool = False
	):
		self.path = str(path)
		self.source = source
		self.expected = expected
		self.actual = actual
		message = 'Source image failed checksum verification:\n'
		if source is not None:
			message += f'Source: {source}\n'
		message += (f'Target: {self.path}\n'
		            f'Expected SHA256: {expected}\n'
		            f'Actual SHA256:   {actual}')
		if deleted:
			message += '\nTarget file deleted.'
		super().__init__(message)


class MountFailed(PipelineError):
	def __init__(self, image: Union[str, Path], reason: str):
		self.image = str(image)
		super().__init__(f'Unable to mount {self.image}: {reason}')


class PayloadNotFound(PipelineError):
	def __init__(self, root: Union[str, Path], probed: Iterable[Union[str, Path]]):
		self.root = str(root)
		self.probed = [str(p) for p in probed]
		super().__init__(f'No installation payload found under {self.root}. Probed: {", ".join(self.probed)}')


class InspectionFailed(PipelineError):
	pass


class NoImagesFound(PipelineError):
	def __init__(self, payload: Union[str, Path]):
		self.payload = str(payload)
		super().__init__(f'No images found in {self.payload}')


class IndexNotFound(PipelineError):
	def __init__(self, index: int, available: Sequence[int]):
		self.index = index
		self.available = list(available)
		super().__init__(
		    f'Image index {index} not found. Available indices: {", ".join(str(i) for i in self.available)}'
		)


class EditionNotFound(PipelineError):
	def __init__(self, edition: str, available: Sequence[str]):
		self.edition = edition
		self.available = list(available)
		super().__init__(f'Edition {edition!r} not found. Available editions: {", ".join(self.available)}')


class BuildOperationFailed(PipelineError):
	pass


class Interrupted(KeyboardInterrupt):
	def __init__(self, signum: int):
		self.signum = signum
		super().__init__(f'Interrupted by signal {signum}')
