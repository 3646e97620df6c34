import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, NamedTuple, Sequence

from .utils.io import DEFAULT_ENCODING
from .utils.logging import debug, logged

if TYPE_CHECKING:
	from .server import Server

# --
# == Server-side includes
#
# Directives are HTML comments of the form `<!--#command key="value" key-->`.
# Each directive is given to an ordered chain of handlers, the first handler
# to return a string replaces the directive text. Directives no handler
# recognizes are left untouched, and the text outside of directives is
# always copied as-is.

# The command stops before a closing `-->`, and the parameters never run into
# the next comment.
DIRECTIVE = re.compile(r"<!--#((?:(?!-->)\S)+)\s((?:(?!<!--).)*?)-->", re.DOTALL)
PARAMETER = re.compile(r'([^\s="]+)(?:="([^"]*)")?')

MAX_INCLUDE_DEPTH: int = 16


class SSIError(Exception):
	"""Base class for failures while processing directives."""


class IncludeDepthError(SSIError):
	def __init__(self, path: Path, depth: int):
		super().__init__(f"Include depth {depth} exceeded while processing: {path}")
		self.path: Path = path
		self.depth: int = depth


class IncludeError(SSIError):
	"""Raised when an include directive designates something that can't
	be included."""


class Directive(NamedTuple):
	command: str
	parameters: dict[str, str | None]
	text: str

	@staticmethod
	def FromMatch(match: re.Match[str]) -> "Directive":
		return Directive(
			command=match.group(1),
			parameters=parseParameters(match.group(2)),
			text=match.group(0),
		)

	def param(self, name: str) -> str | None:
		return self.parameters.get(name)


def parseParameters(text: str) -> dict[str, str | None]:
	"""Parses `key="value"` and bare `key` parameters, bare keys being
	mapped to `None`. Malformed parameters produce an empty mapping."""
	res: dict[str, str | None] = {}
	i: int = 0
	n: int = len(text)
	while i < n:
		if text[i].isspace():
			i += 1
			continue
		match = PARAMETER.match(text, i)
		if not match or (match.end() < n and not text[match.end()].isspace()):
			return {}
		res[match.group(1)] = match.group(2)
		i = match.end()
	return res


@dataclass(slots=True, frozen=True)
class SSIContext:
	"""Shared by all the handlers invoked while processing one file."""

	# The URL of the request that led to the processed file
	url: str
	headers: Mapping[str, str]
	# The file being processed
	path: Path
	root: Path
	server: "Server | None" = None
	handlers: Sequence["Handler"] = field(default_factory=tuple)
	depth: int = 0
	limit: int = MAX_INCLUDE_DEPTH
	secure: bool = False

	def nested(self, **changes: object) -> "SSIContext":
		"""Returns a context for a nested inclusion."""
		return replace(self, depth=self.depth + 1, **changes)  # type: ignore[arg-type]


class Handler(ABC):
	"""A directive handler, returns `None` when it does not handle the
	directive."""

	@abstractmethod
	async def tryHandle(
		self, context: SSIContext, directive: Directive
	) -> str | None: ...


async def dispatch(context: SSIContext, directive: Directive) -> str:
	for handler in context.handlers:
		res = await handler.tryHandle(context, directive)
		if res is not None:
			return res
	logged(debug) and debug(
		"Directive not handled", Command=directive.command, Path=str(context.path)
	)
	return directive.text


async def substitute(text: str, context: SSIContext) -> str:
	"""Replaces the directives found in `text`. Directives are evaluated
	concurrently, and assembled in the order in which they appear."""
	chunks: list[str] = []
	pending: list[asyncio.Future[str]] = []
	offset: int = 0
	for match in DIRECTIVE.finditer(text):
		chunks.append(text[offset : match.start()])
		pending.append(
			asyncio.ensure_future(dispatch(context, Directive.FromMatch(match)))
		)
		offset = match.end()
	if not pending:
		return text
	try:
		results = await asyncio.gather(*pending)
	except BaseException:
		for _ in pending:
			_.cancel()
		raise
	res: list[str] = []
	for chunk, value in zip(chunks, results):
		res.append(chunk)
		res.append(value)
	res.append(text[offset:])
	return "".join(res)


async def process(
	path: Path | str, context: SSIContext, handlers: Sequence[Handler]
) -> str:
	"""Reads the file at `path` and returns its contents with all directives
	substituted using the given handlers."""
	p = Path(path)
	if context.depth > context.limit:
		raise IncludeDepthError(p, context.depth)
	# Read as bytes so that line endings are preserved
	text = (await asyncio.to_thread(p.read_bytes)).decode(
		DEFAULT_ENCODING, errors="replace"
	)
	return await substitute(text, replace(context, path=p, handlers=handlers))


# EOF
