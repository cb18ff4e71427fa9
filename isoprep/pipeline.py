import enum
import os
from pathlib import Path
from typing import Callable, List, Optional

from .acquire import Fetcher, acquire
from .configuration import BuildOptions, ResolvedConfiguration, resolve
from .editions import ImageInspector, enumerate_images, format_catalog, select_image
from .lib import interrupt_guard, warn
from .mount import LoopMounter, MountedImage, Mounter, copy_tree
from .payload import locate
from .workspace import Workspace, prepare, teardown

BuildOperation = Callable[[ResolvedConfiguration], None]


class Stage(enum.Enum):
	INIT = 'init'
	WORKSPACE_PREPARED = 'workspace-prepared'
	SOURCE_RESOLVED = 'source-resolved'
	MOUNTED = 'mounted'
	PAYLOAD_LOCATED = 'payload-located'
	EDITION_ENUMERATED = 'edition-enumerated'
	CONFIGURATION_RESOLVED = 'configuration-resolved'
	BUILD_INVOKED = 'build-invoked'
	CLEANUP = 'cleanup'
	DONE = 'done'
	FAILED = 'failed'


class PipelineRun(object):
	options: BuildOptions
	stage: Stage
	history: List[Stage]
	workspace: Optional[Workspace] = None
	source_mount: Optional[MountedImage] = None
	configuration: Optional[ResolvedConfiguration] = None
	error: Optional[BaseException] = None

	def __init__(
	    self,
	    options: BuildOptions,
	    build: BuildOperation,
	    mounter: Optional[Mounter] = None,
	    inspector: Optional[ImageInspector] = None,
	    fetchers: Optional[List[Fetcher]] = None,
	):
		self.options = options
		self.build = build
		self.mounter = mounter if mounter is not None else LoopMounter()
		self.inspector = inspector
		self.fetchers = fetchers
		self.stage = Stage.INIT
		self.history = [Stage.INIT]
		self._cleaned_up = False

	def advance(self, stage: Stage) -> None:
		self.stage = stage
		self.history.append(stage)

	def run(self) -> ResolvedConfiguration:
		with interrupt_guard():
			try:
				configuration = self._run()
				self.cleanup()
			except BaseException as e:
				self.error = e
				self.cleanup(failing=True)
				self.advance(Stage.FAILED)
				raise
			self.advance(Stage.DONE)
			return configuration

	def _run(self) -> ResolvedConfiguration:
		options = self.options

		self.workspace = workspace = prepare(options.workspace)
		self.advance(Stage.WORKSPACE_PREPARED)

		source = acquire(
		    options.source,
		    workspace.downloads_dir,
		    sha256=options.sha256,
		    fetchers=self.fetchers,
		    proxies=options.proxies.as_requests(),
		)
		self.advance(Stage.SOURCE_RESOLVED)

		# The source is mounted on scratch only long enough to copy it out.
		self.source_mount = MountedImage(source, workspace.scratch_dir, self.mounter)
		with self.source_mount as root:
			self.advance(Stage.MOUNTED)
			copy_tree(root, workspace.mount_dir)

		payload = locate(workspace.mount_dir)
		self.advance(Stage.PAYLOAD_LOCATED)

		images = enumerate_images(payload, self.inspector)
		print('Available images:\n' + format_catalog(images))
		image = select_image(images, options.policy())
		print(f'Selected image {image.index}: {image.name}')
		self.advance(Stage.EDITION_ENUMERATED)

		self.configuration = resolve(options, workspace, payload, image)
		self.advance(Stage.CONFIGURATION_RESOLVED)

		self.advance(Stage.BUILD_INVOKED)
		self.build(self.configuration)
		return self.configuration

	def cleanup(self, failing: bool = False) -> None:
		if self._cleaned_up:
			return
		self._cleaned_up = True
		self.advance(Stage.CLEANUP)
		if self._mount_held():
			# Removing the tree would walk into the mounted image.
			warn(f'{self.workspace.scratch_dir!s} is still mounted; leaving workspace {self.workspace.root!s} in place.\n'
			     f'You may need to manually clean up {self.workspace.root!s}.')
			return
		try:
			teardown(self.options.workspace, self.options.retain_workspace)
		except OSError as e:
			if not failing:
				raise
			warn(f'Unable to remove workspace {self.options.workspace!s}: {e!s}')

	def _mount_held(self) -> bool:
		if self.source_mount is not None and self.source_mount.active:
			return True
		return self.workspace is not None and os.path.ismount(self.workspace.scratch_dir)


def run_pipeline(
    options: BuildOptions,
    build: BuildOperation,
    mounter: Optional[Mounter] = None,
    inspector: Optional[ImageInspector] = None,
    fetchers: Optional[List[Fetcher]] = None,
) -> ResolvedConfiguration:
	return PipelineRun(options, build, mounter=mounter, inspector=inspector, fetchers=fetchers).run()
