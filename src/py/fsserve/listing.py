import asyncio
import os
from pathlib import Path
from typing import NamedTuple
from urllib.parse import quote

from .http.model import HTTPResponse
from .responses import htmlResponse, notFound
from .utils.htmpl import H, Node, html
from .utils.io import DEFAULT_ENCODING
from .utils.logging import warning


class ListingEntry(NamedTuple):
	# As returned by `os.scandir`, undecodable bytes are surrogate-escaped
	name: str
	isDirectory: bool

	@property
	def href(self) -> str:
		return f"./{quote(os.fsencode(self.name))}{'/' if self.isDirectory else ''}"

	@property
	def label(self) -> str:
		return self.name.encode(DEFAULT_ENCODING, "surrogateescape").decode(
			DEFAULT_ENCODING, "replace"
		)


def entries(path: Path) -> list[ListingEntry]:
	"""Returns the visible entries of the directory, sorted by name. Dot
	files are hidden."""
	with os.scandir(path) as items:
		return sorted(
			(
				ListingEntry(_.name, _.is_dir())
				for _ in items
				if not _.name.startswith(".")
			),
			key=lambda _: _.name,
		)


def render(items: list[ListingEntry]) -> str:
	nodes: list[Node] = [H.div(H.a(_.label, href=_.href)) for _ in items]
	return "".join(
		html(
			H.html(H.head(H.title("List")), H.body(nodes)),
			doctype="html",
		)
	)


async def listing(path: Path) -> HTTPResponse:
	"""Renders the listing page of the given directory, an unreadable
	directory is not found."""
	try:
		items = await asyncio.to_thread(entries, path)
	except OSError as e:
		warning("Could not list directory", Path=str(path), Error=str(e))
		return notFound()
	return htmlResponse(render(items), diagnostic=str(path))


# EOF
