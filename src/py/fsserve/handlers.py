import os
from pathlib import Path
from urllib.parse import unquote, urljoin, urlsplit

from .client import fetch
from .http.model import HTTPRequest, getHeader
from .ssi import Directive, Handler, IncludeError, SSIContext, process
from .utils.io import asText
from .utils.logging import debug, logged

# --
# == Include handlers
#
# The reference handlers for the `include` directive. Each of them only
# handles the directive when its parameter is present with a value, which
# lets them be chained: `<!--#include file="…"-->`,
# `<!--#include virtual="…"-->` and `<!--#include url="…"-->`.

INCLUDE: str = "include"

# A sub-request must always produce a body, so it never carries the
# conditional headers of the request that triggered it.
CONDITIONAL_HEADERS: frozenset[str] = frozenset(
	("if-none-match", "if-modified-since", "if-match", "if-unmodified-since")
)


class IncludeFile(Handler):
	"""Includes a file given relative to the directory of the file being
	processed, itself processed with the same handlers."""

	async def tryHandle(self, context: SSIContext, directive: Directive) -> str | None:
		if directive.command != INCLUDE or (name := directive.param("file")) is None:
			return None
		path = Path(os.path.normpath(context.path.parent / unquote(name)))
		if not path.is_relative_to(context.root):
			raise IncludeError(f"Included file is outside of the root: {name}")
		logged(debug) and debug("Including file", Path=str(path), Depth=context.depth)
		return await process(path, context.nested(), context.handlers)


class IncludeVirtual(Handler):
	"""Includes the response to a URL given relative to the current request,
	going through the whole request pipeline."""

	async def tryHandle(self, context: SSIContext, directive: Directive) -> str | None:
		if (
			directive.command != INCLUDE
			or (value := directive.param("virtual")) is None
			or context.server is None
		):
			return None
		url = urlsplit(urljoin(context.url, value))
		headers = {
			k: v for k, v in context.headers.items() if k.lower() not in CONDITIONAL_HEADERS
		}
		logged(debug) and debug("Including virtual", URL=url.geturl(), Depth=context.depth)
		res = await context.server.process(
			HTTPRequest.Create(url.path or "/", headers=headers, query=url.query),
			depth=context.depth + 1,
		)
		return asText(await res.read())


class IncludeURL(Handler):
	"""Includes the body fetched from a remote URL, as-is. The fetched
	content is not escaped."""

	def __init__(self, timeout: float = 10.0):
		self.timeout: float = timeout

	def base(self, context: SSIContext) -> str:
		host = getHeader(context.headers, "Host") or "localhost"
		return f"{'https' if context.secure else 'http'}://{host}{context.url}"

	async def tryHandle(self, context: SSIContext, directive: Directive) -> str | None:
		if directive.command != INCLUDE or (value := directive.param("url")) is None:
			return None
		url = urljoin(self.base(context), value)
		logged(debug) and debug("Including URL", URL=url)
		res = await fetch(url, timeout=self.timeout)
		return asText(await res.read())


def includes(timeout: float = 10.0) -> list[Handler]:
	"""Returns the default handler chain: file, virtual and then URL
	includes."""
	return [IncludeFile(), IncludeVirtual(), IncludeURL(timeout=timeout)]


# EOF
