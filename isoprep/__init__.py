from pathlib import Path
from typing import Any, Union

from .acquire import ParallelFetcher, StreamFetcher, acquire, available_fetchers
from .configuration import BuildOptions, ProxyConfig, ResolvedConfiguration, load_options
from .editions import (ExplicitIndex, FirstAvailable, ImageDescriptor, PreferredEdition, WimlibInspector,
                       enumerate_images, select_image)
from .errors import (BuildOperationFailed, ChecksumMismatch, ConfigurationError, DownloadFailed, EditionNotFound,
                     IndexNotFound, InspectionFailed, Interrupted, MountFailed, NoImagesFound, PayloadNotFound,
                     PipelineError, SourceNotFound)
from .mount import LoopMounter, MountedImage, mounted, with_mount
from .payload import locate
from .pipeline import BuildOperation, PipelineRun, Stage, run_pipeline
from .workspace import Workspace, prepare, teardown


def prepare_image(options_location: Union[str, Path], build: BuildOperation, **kwargs: Any) -> ResolvedConfiguration:
	## Stage 0: Load options

	options = load_options(options_location)

	## Stage 1: Acquire, inspect and hand off to the build operation.

	return run_pipeline(options, build, **kwargs)
