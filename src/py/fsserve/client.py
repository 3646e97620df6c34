import asyncio
import ssl
from typing import NamedTuple
from urllib.parse import urlsplit

import certifi

from .http.model import (
	HTTPBodyBlob,
	HTTPProcessingStatus,
	HTTPResponse,
	getHeader,
)
from .http.parser import HTTPParser
from .utils.logging import debug, logged

# --
# A minimal async HTTP(S) client, used to fetch remote resources. Each
# request uses its own connection, which the remote end closes once the
# response is sent.

SSL_CLIENT_CONTEXT: ssl.SSLContext = ssl.create_default_context(
	ssl.Purpose.SERVER_AUTH, cafile=certifi.where()
)

USER_AGENT: str = "fs-serve"


class ClientException(Exception):
	def __init__(self, message: str, status: HTTPProcessingStatus | int):
		super().__init__(f"Client request failed: {message} ({status})")
		self.status = status


class Target(NamedTuple):
	"""A host/port target, with the path to request."""

	host: str
	port: int
	ssl: bool
	path: str

	@staticmethod
	def FromURL(url: str) -> "Target":
		parts = urlsplit(url)
		if parts.scheme not in ("http", "https"):
			raise ClientException(f"Unsupported URL scheme in: {url}", 400)
		if not parts.hostname:
			raise ClientException(f"URL has no host: {url}", 400)
		secure = parts.scheme == "https"
		path = parts.path or "/"
		return Target(
			host=parts.hostname,
			port=parts.port or (443 if secure else 80),
			ssl=secure,
			path=f"{path}?{parts.query}" if parts.query else path,
		)

	@property
	def authority(self) -> str:
		return (
			self.host
			if self.port == (443 if self.ssl else 80)
			else f"{self.host}:{self.port}"
		)


def dechunk(payload: bytes) -> bytes:
	"""Decodes a body sent with `Transfer-Encoding: chunked`."""
	res = bytearray()
	offset: int = 0
	while True:
		end = payload.find(b"\r\n", offset)
		if end == -1:
			raise ClientException("Truncated chunked body", HTTPProcessingStatus.BadFormat)
		size = int(payload[offset:end].split(b";", 1)[0].strip() or b"0", 16)
		if size == 0:
			return bytes(res)
		start = end + 2
		res += payload[start : start + size]
		offset = start + size + 2


async def request(
	method: str,
	url: str,
	*,
	headers: dict[str, str] | None = None,
	timeout: float = 10.0,
) -> HTTPResponse:
	"""Performs the request and returns the response with its body fully
	loaded."""
	target = Target.FromURL(url)
	head: dict[str, str] = {
		"Host": target.authority,
		"User-Agent": USER_AGENT,
		"Accept": "*/*",
	} | (headers or {})
	# The response body is delimited by the connection closing when
	# there is no length.
	head["Connection"] = "close"
	logged(debug) and debug("Client request", Method=method, URL=url)

	async def exchange() -> bytes:
		reader, writer = await asyncio.open_connection(
			host=target.host,
			port=target.port,
			ssl=SSL_CLIENT_CONTEXT if target.ssl else None,
		)
		try:
			writer.write(f"{method} {target.path} HTTP/1.1\r\n".encode("ascii"))
			writer.write(
				"".join(f"{k}: {v}\r\n" for k, v in head.items()).encode("latin-1")
			)
			writer.write(b"\r\n")
			await writer.drain()
			return await reader.read()
		finally:
			writer.close()

	try:
		data = await asyncio.wait_for(exchange(), timeout=timeout)
	except TimeoutError as e:
		raise ClientException(f"Timed out requesting {url}", HTTPProcessingStatus.Timeout) from e
	if not data:
		raise ClientException(f"No data received from {url}", HTTPProcessingStatus.NoData)
	parser = HTTPParser()
	for atom in (*parser.feed(data), *parser.flush()):
		if isinstance(atom, HTTPResponse):
			res = atom
			break
	else:
		raise ClientException(f"Incomplete response from {url}", HTTPProcessingStatus.BadFormat)
	encoding = getHeader(res.headers.headers, "Transfer-Encoding")
	if encoding and "chunked" in encoding.lower() and isinstance(res.body, HTTPBodyBlob):
		res.body = HTTPBodyBlob.FromBytes(dechunk(res.body.payload))
	return res


async def fetch(url: str, *, timeout: float = 10.0) -> HTTPResponse:
	return await request("GET", url, timeout=timeout)


# EOF
