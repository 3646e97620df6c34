import asyncio
import os
import stat
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple, Sequence, TypeAlias
from urllib.parse import unquote

from .utils.files import extension

# --
# == Path resolution
#
# Maps a decoded request path to a node of the filesystem under a root
# directory. Each segment of the path is tried verbatim and then with each
# of the fallback extensions, a directory requested without a trailing
# slash is redirected, and a directory requested with a trailing slash is
# served through its index document (or listed).

INDEX_DOCUMENTS: tuple[str, ...] = ("index.html", "index.shtml")

# Segments that are never consumed, as they would either escape the root or
# make the same resource reachable through different paths.
FORBIDDEN_SEGMENTS: frozenset[str] = frozenset(("", ".", ".."))


class NodeKind(Enum):
	File = "file"
	Directory = "directory"


class Outcome(Enum):
	"""Resolution outcomes that don't designate a node."""

	Redirect = "redirect"
	NotFound = "notfound"


class ResolvedNode(NamedTuple):
	path: Path
	kind: NodeKind
	size: int
	modifiedAtMillis: int

	@staticmethod
	def FromStat(path: Path, stats: os.stat_result) -> "ResolvedNode":
		return ResolvedNode(
			path=path,
			kind=NodeKind.Directory if stat.S_ISDIR(stats.st_mode) else NodeKind.File,
			size=stats.st_size,
			modifiedAtMillis=stats.st_mtime_ns // 1_000_000,
		)

	@property
	def etag(self) -> str:
		return f"{self.size}-{self.modifiedAtMillis}"

	@property
	def extension(self) -> str:
		return extension(self.path)


TResolution: TypeAlias = ResolvedNode | Outcome


def segments(path: str) -> list[str]:
	"""Percent-decodes the given request path and splits it into segments.
	The leading slash does not produce a segment, while a trailing slash
	produces an empty last segment. Raises `UnicodeDecodeError` when the
	decoded bytes are not valid UTF-8."""
	parts = unquote(path, errors="strict").split("/")
	return parts[1:] if len(parts) > 1 and parts[0] == "" else parts


async def getStats(path: Path) -> os.stat_result | None:
	"""Returns the stats for the given path, or `None` when they can't be
	retrieved (missing file, permission denied, invalid name)."""
	try:
		return await asyncio.to_thread(os.stat, path)
	except (OSError, ValueError):
		return None


def candidates(segment: str, extensions: Iterable[str]) -> Iterator[str]:
	yield segment
	for ext in extensions:
		yield f"{segment}.{ext}"


def isSafe(segment: str) -> bool:
	return not (
		segment in FORBIDDEN_SEGMENTS
		or "/" in segment
		or os.sep in segment
		or (os.altsep is not None and os.altsep in segment)
		or "\x00" in segment
	)


async def resolve(
	root: Path | str,
	parts: Sequence[str],
	*,
	extensions: Sequence[str] = (),
	directoryList: bool = False,
) -> TResolution:
	"""Resolves the given path segments against the root directory."""
	base: Path = Path(root).absolute()
	current: Path = base
	current_stats = await getStats(current)
	if current_stats is None:
		return Outcome.NotFound
	i: int = 0
	n: int = len(parts)
	# An empty list, or a single empty segment (the trailing slash) stops
	# the descent.
	while i < n and not (i == n - 1 and parts[i] == ""):
		segment = parts[i]
		if not isSafe(segment):
			return Outcome.NotFound
		for name in candidates(segment, extensions):
			if (child_stats := await getStats(current / name)) is not None:
				current, current_stats = current / name, child_stats
				break
		else:
			return Outcome.NotFound
		i += 1
	if not current.is_relative_to(base):
		return Outcome.NotFound
	return await evaluate(
		current, current_stats, trailingSlash=i < n, directoryList=directoryList
	)


async def evaluate(
	path: Path,
	stats: os.stat_result,
	*,
	trailingSlash: bool,
	directoryList: bool,
) -> TResolution:
	"""Evaluates the node at which the descent stopped."""
	if stat.S_ISREG(stats.st_mode):
		return ResolvedNode.FromStat(path, stats)
	elif not stat.S_ISDIR(stats.st_mode):
		return Outcome.NotFound
	elif not trailingSlash:
		return Outcome.Redirect
	for name in INDEX_DOCUMENTS:
		index_stats = await getStats(path / name)
		if index_stats is not None and stat.S_ISREG(index_stats.st_mode):
			return ResolvedNode.FromStat(path / name, index_stats)
	return (
		ResolvedNode.FromStat(path, stats) if directoryList else Outcome.NotFound
	)


# EOF
