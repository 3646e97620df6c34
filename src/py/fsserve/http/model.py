import asyncio
from abc import ABC, abstractmethod
from contextlib import aclosing
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Mapping, NamedTuple, TypeAlias, Union

from ..utils.io import DEFAULT_ENCODING
from .status import HTTP_NO_BODY, HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


# Header names that `Kebab-Case` does not produce
HEADER_NAMES: dict[str, str] = {"etag": "ETag"}


def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	if (known := HEADER_NAMES.get(name.lower())) is not None:
		return known
	return "-".join(_.capitalize() for _ in name.split("-"))


def getHeader(headers: Mapping[str, str], name: str) -> str | None:
	"""Looks up a header in a mapping that may or may not have normalized
	header names."""
	if (value := headers.get(headername(name))) is not None:
		return value
	key = name.lower()
	for k, v in headers.items():
		if k.lower() == key:
			return v
	return None


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPResponseLine(NamedTuple):
	"""Represents a response status line"""

	protocol: str
	status: int
	message: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for response/request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Body = 1
	Timeout = 10
	NoData = 11
	BadFormat = 12


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------

FILE_CHUNK_SIZE: int = 64_000


class HTTPBodyBlob(NamedTuple):
	"""Represents a body fully held in memory."""

	payload: bytes = b""
	length: int = 0

	@staticmethod
	def FromBytes(data: bytes) -> "HTTPBodyBlob":
		return HTTPBodyBlob(payload=data, length=len(data))

	async def load(self) -> bytes:
		return self.payload


class HTTPBodyFile(NamedTuple):
	"""Represents a body streamed from a file on disk. The file is only
	opened while the body is being read."""

	path: Path
	size: int

	@property
	def length(self) -> int:
		return self.size

	async def stream(self, size: int = FILE_CHUNK_SIZE) -> AsyncIterator[bytes]:
		# The `with` block guarantees the handle is released when the
		# generator is closed early, including on cancellation.
		with open(self.path, "rb") as f:
			while chunk := await asyncio.to_thread(f.read, size):
				yield chunk

	async def load(self) -> bytes:
		res = bytearray()
		async with aclosing(self.stream()) as chunks:
			async for chunk in chunks:
				res += chunk
		return bytes(res)


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile

# Type alias for what the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPResponseLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
	"HTTPResponse",
]


class HTTPBodyWriter(ABC):
	"""A generic writer for response heads and bodies."""

	__slots__ = ["shouldClose"]

	def __init__(self) -> None:
		self.shouldClose: bool = False

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		"""Writes the given type of body."""
		if isinstance(body, bytes):
			return await self._writeBytes(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._writeBytes(body.payload)
		elif isinstance(body, HTTPBodyFile):
			return await self._writeFile(body)
		elif body is None:
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def _writeFile(self, body: HTTPBodyFile) -> bool:
		async with aclosing(body.stream()) as chunks:
			async for chunk in chunks:
				await self._writeBytes(chunk)
		return True

	@abstractmethod
	async def _writeBytes(self, chunk: bytes) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest:
	"""Represents an HTTP request. The path is kept as received, that is
	still percent-encoded."""

	__slots__ = ["protocol", "method", "path", "query", "_headers", "_body"]

	@staticmethod
	def Create(
		path: str,
		*,
		method: str = "GET",
		headers: Mapping[str, str] | None = None,
		query: str = "",
	) -> "HTTPRequest":
		"""Creates a request out of plain values, normalizing header names."""
		return HTTPRequest(
			method=method,
			path=path,
			query=query,
			headers=HTTPHeaders(
				{headername(k): v for k, v in (headers or {}).items()}
			),
		)

	def __init__(
		self,
		method: str,
		path: str,
		query: str,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
	):
		self.method: str = method
		self.path: str = path
		self.query: str = query
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers
		self._body: HTTPBodyBlob | None = body

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	@property
	def url(self) -> str:
		return f"{self.path}?{self.query}" if self.query else self.path

	def header(self, name: str) -> str | None:
		return getHeader(self._headers.headers, name)

	def __str__(self) -> str:
		return f"Request({self.method} {self.url} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response, with an optional diagnostic that is reported to
	the request log but never sent to the client."""

	@staticmethod
	def Create(
		content: str | bytes | THTTPBody | None = None,
		contentType: str | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		diagnostic: str = "",
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		body: THTTPBody | None = None
		if content is None:
			pass
		elif isinstance(content, str):
			body = HTTPBodyBlob.FromBytes(content.encode(DEFAULT_ENCODING))
		elif isinstance(content, bytes):
			body = HTTPBodyBlob.FromBytes(content)
		elif isinstance(content, HTTPBodyBlob) or isinstance(content, HTTPBodyFile):
			body = content
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		res: dict[str, str] = {headername(k): v for k, v in (headers or {}).items()}
		if contentType is not None:
			res["Content-Type"] = contentType
		content_length: int | None = None
		if status not in HTTP_NO_BODY:
			content_length = body.length if body else 0
			res["Content-Length"] = str(content_length)
		return HTTPResponse(
			protocol=protocol,
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=HTTPHeaders(
				res,
				contentType=res.get("Content-Type"),
				contentLength=content_length,
			),
			body=body,
			diagnostic=diagnostic,
		)

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
		"diagnostic",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
		diagnostic: str = "",
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		self.diagnostic: str = diagnostic

	def getHeader(self, name: str) -> str | None:
		return getHeader(self.headers.headers, name)

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	async def read(self) -> bytes:
		"""Fully loads the body, streamed bodies included."""
		return await self.body.load() if self.body else b""

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [
			f"{headername(k)}: {v}" for k, v in self.headers.headers.items()
		]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		return "\r\n".join(lines).encode("latin-1")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers.headers})"


# EOF
