from typing import Mapping

from .http.model import HTTPBodyFile, HTTPResponse, getHeader
from .resolver import ResolvedNode
from .utils.files import contentType

# --
# == Responses
#
# Builds the responses for the outcomes of a resolution. File responses
# support conditional requests through `ETag`/`If-None-Match`; SSI output
# is materialized and is never conditional, as its validator would have to
# cover every included resource.


def cacheHeaders(node: ResolvedNode, maxAge: int) -> dict[str, str]:
	return {
		"Cache-Control": f"max-age={maxAge}",
		"Content-Type": contentType(node.path),
	}


def etags(value: str | None) -> list[str]:
	"""Parses the comma-separated list of an `If-None-Match` header."""
	return [_.strip() for _ in value.split(",")] if value else []


def fileResponse(
	headers: Mapping[str, str], node: ResolvedNode, maxAge: int
) -> HTTPResponse:
	etag: str = node.etag
	base: dict[str, str] = cacheHeaders(node, maxAge) | {"ETag": etag}
	if etag in etags(getHeader(headers, "If-None-Match")):
		return HTTPResponse.Create(
			status=304, headers=base, diagnostic=str(node.path)
		)
	else:
		return HTTPResponse.Create(
			HTTPBodyFile(node.path, node.size),
			headers=base,
			diagnostic=str(node.path),
		)


def ssiResponse(text: str, node: ResolvedNode, maxAge: int) -> HTTPResponse:
	return HTTPResponse.Create(
		text, headers=cacheHeaders(node, maxAge), diagnostic=str(node.path)
	)


def htmlResponse(html: str, diagnostic: str = "") -> HTTPResponse:
	return HTTPResponse.Create(
		html, contentType=contentType("index.html"), diagnostic=diagnostic
	)


def redirect(location: str) -> HTTPResponse:
	# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
	return HTTPResponse.Create(
		status=301, headers={"Location": location}, diagnostic=location
	)


def notFound() -> HTTPResponse:
	return HTTPResponse.Create(status=404)


def serverError() -> HTTPResponse:
	return HTTPResponse.Create(status=500)


# EOF
