import shutil
from pathlib import Path
from typing import NamedTuple, Union


class Workspace(NamedTuple):
	root: Path
	mount_dir: Path
	scratch_dir: Path
	downloads_dir: Path


def prepare(root: Union[str, Path]) -> Workspace:
	root = Path(root).absolute()
	workspace = Workspace(root, root / 'mount', root / 'scratch', root / 'downloads')
	print(f'Preparing workspace {root!s}')
	root.mkdir(parents=True, exist_ok=True)
	for path in (workspace.mount_dir, workspace.scratch_dir, workspace.downloads_dir):
		if path.is_symlink() or path.is_file():
			path.unlink()
		elif path.exists():
			shutil.rmtree(path)
		path.mkdir()
	return workspace


def teardown(root: Union[str, Path], retain: bool = False) -> None:
	root = Path(root).absolute()
	if retain:
		print(f'Retaining workspace {root!s}')
		return
	if not root.exists():
		return  # Already done.
	print(f'Removing workspace {root!s}')
	shutil.rmtree(root)

