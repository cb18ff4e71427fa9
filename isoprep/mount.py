import contextlib
import os
import shutil
import stat
import subprocess
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar, Union

from typing_extensions import Protocol

from .errors import MountFailed
from .lib import warn

T = TypeVar('T')


class Mounter(Protocol):
	def mount(self, image: Path, mountpoint: Path) -> Path:
		...

	def unmount(self, root: Path) -> None:
		...


class LoopMounter(object):
	def mount(self, image: Path, mountpoint: Path) -> Path:
		try:
			subprocess.run(['mount', '-o', 'loop,ro', str(image), str(mountpoint)],
			               check=True,
			               stderr=subprocess.PIPE)
		except subprocess.CalledProcessError as e:
			raise MountFailed(image, e.stderr.decode('utf8', errors='replace').strip() or str(e)) from e
		except OSError as e:
			raise MountFailed(image, str(e)) from e
		return mountpoint

	def unmount(self, root: Path) -> None:
		subprocess.run(['umount', str(root)], check=True)


class MountedImage(object):
	image: Path
	mountpoint: Path
	root: Optional[Path] = None
	released: bool = False

	def __init__(self, image: Union[str, Path], mountpoint: Union[str, Path], mounter: Mounter):
		self.image = Path(image)
		self.mountpoint = Path(mountpoint)
		self.mounter = mounter
		self._unmount_attempted = False

	@property
	def active(self) -> bool:
		return self.root is not None and not self.released

	def mount(self) -> Path:
		print(f'Mounting {self.image!s}')
		root = self.mounter.mount(self.image, self.mountpoint)
		self.root = Path(root) if root is not None else self.mountpoint
		if root is None or not self.root.is_dir() or not os.access(self.root, os.R_OK | os.X_OK):
			self.unmount()
			raise MountFailed(self.image, 'the mount did not yield an accessible root')
		return self.root

	def unmount(self) -> bool:
		if self.root is None or self._unmount_attempted:
			return self.released
		self._unmount_attempted = True
		print(f'Unmounting {self.image!s}')
		try:
			self.mounter.unmount(self.root)
		except Exception as e:
			# Reported, never raised: it must not mask an error from the body.
			warn(f'Unable to unmount {self.image!s}: {e!s}\n'
			     f'You may need to manually clean up {self.mountpoint!s}.')
			return False
		self.released = True
		return True

	def __enter__(self) -> Path:
		return self.mount()

	def __exit__(self, exc_type, exc_value, traceback) -> None:
		self.unmount()


@contextlib.contextmanager
def mounted(image: Union[str, Path], mountpoint: Union[str, Path], mounter: Mounter) -> Iterator[Path]:
	with MountedImage(image, mountpoint, mounter) as root:
		yield root


def with_mount(
    image: Union[str, Path], mountpoint: Union[str, Path], body: Callable[[Path], T], mounter: Mounter
) -> T:
	with mounted(image, mountpoint, mounter) as root:
		return body(root)


def _make_writable(path: Path) -> None:
	mode = os.lstat(path).st_mode
	if not stat.S_ISLNK(mode):
		os.chmod(path, stat.S_IMODE(mode) | stat.S_IWUSR | stat.S_IRUSR | (stat.S_IXUSR if stat.S_ISDIR(mode) else 0))


def copy_tree(src: Union[str, Path], dest: Union[str, Path]) -> Path:
	src, dest = Path(src), Path(dest)
	print(f'Copying {src!s} to {dest!s}')
	shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
	# Media is read-only; the copy has to be editable and removable.
	_make_writable(dest)
	for dirpath, dirnames, filenames in os.walk(dest):
		for name in dirnames + filenames:
			_make_writable(Path(dirpath) / name)
	return dest
