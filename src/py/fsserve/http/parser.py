from typing import ClassVar, Iterator, Literal

from ..utils.io import LineParser
from .model import (
	HTTPAtom,
	HTTPBodyBlob,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	HTTPResponse,
	HTTPResponseLine,
	headername,
)


class MessageParser:
	"""Parses an HTTP request or response line."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | HTTPResponseLine | None = None

	def flush(self) -> HTTPRequestLine | HTTPResponseLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# Empty lines between pipelined messages are tolerated
			return None, read
		ln = line.decode("latin-1")
		if ln.startswith("HTTP/"):
			protocol, status, *message = ln.split(" ", 2)
			self.value = HTTPResponseLine(
				protocol, int(status), message[0] if message else ""
			)
		else:
			i = ln.find(" ")
			j = ln.rfind(" ")
			if i == -1 or i == j:
				raise ValueError(f"Malformed request line: {ln!r}")
			p: list[str] = ln[i + 1 : j].split("?", 1)
			self.value = HTTPRequestLine(
				ln[0:i], p[0], p[1] if len(p) > 1 else "", ln[j + 1 :]
			)
		return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the number of bytes read. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the headers, otherwise it's the name of the parsed
		header."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			return False, read
		ln: str = line.decode("latin-1")
		i = ln.find(":")
		if i == -1:
			return None, read
		h = ln[:i].lower().strip()
		v = ln[i + 1 :].strip()
		if h == "content-length":
			try:
				self.contentLength = int(v)
			except ValueError:
				self.contentLength = None
		elif h == "content-type":
			self.contentType = v
		n: str = headername(h)
		self.headers[n] = v
		return n, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyRestParser:
	"""Consumes everything until the parser is flushed, which is how
	bodies without a length are delimited (by the connection closing)."""

	__slots__ = ["buffer"]

	def __init__(self) -> None:
		self.buffer: bytearray = bytearray()

	def flush(self) -> HTTPBodyBlob:
		res: HTTPBodyBlob = HTTPBodyBlob.FromBytes(bytes(self.buffer))
		self.reset()
		return res

	def reset(self) -> "BodyRestParser":
		self.buffer.clear()
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		self.buffer += chunk[start:]
		return None, len(chunk) - start


class BodyLengthParser:
	"""Parses a body with a known `Content-Length`"""

	__slots__ = ["expected", "read", "data"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0
		self.data: list[bytes] = []

	def flush(self) -> HTTPBodyBlob:
		res = HTTPBodyBlob(b"".join(self.data), self.read)
		self.reset()
		return res

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		self.data.clear()
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		self.data.append(chunk[start : start + to_read])
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful, incremental HTTP parser producing requests (server side)
	or responses (client side)."""

	METHOD_HAS_BODY: ClassVar[set[str]] = {"POST", "PUT", "PATCH"}

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.bodyLength: BodyLengthParser = BodyLengthParser()
		self.bodyRest: BodyRestParser = BodyRestParser()
		self.parser: (
			MessageParser | HeadersParser | BodyLengthParser | BodyRestParser
		) = self.message
		self.line: HTTPRequestLine | HTTPResponseLine | None = None
		self.head: HTTPHeaders | None = None

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		size: int = len(chunk)
		offset: int = 0
		# Bodies may be empty, in which case there is nothing left to feed
		# but a message to produce.
		while offset < size or (
			self.parser is self.bodyLength and self.bodyLength.expected == 0
		):
			value, read = self.parser.feed(chunk, offset)
			offset += read
			if value is None:
				continue
			elif self.parser is self.message:
				self.line = self.message.flush()
				self.head = None
				if self.line is not None:
					yield self.line
					self.parser = self.headers
			elif self.parser is self.headers:
				if value is not False:
					# `value` is the name of the parsed header
					continue
				self.head = self.headers.flush()
				yield self.head
				line = self.line
				if isinstance(line, HTTPRequestLine) and (
					line.method not in self.METHOD_HAS_BODY
					or not self.head.contentLength
				):
					# Requests without a body are produced right away
					yield self.produce(HTTPBodyBlob())
				elif self.head.contentLength is not None:
					self.parser = self.bodyLength.reset(self.head.contentLength)
					yield HTTPProcessingStatus.Body
				else:
					self.parser = self.bodyRest.reset()
					yield HTTPProcessingStatus.Body
			elif self.parser is self.bodyLength:
				yield self.produce(self.bodyLength.flush())
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")

	def flush(self) -> Iterator[HTTPAtom]:
		"""Signals the end of the stream, producing the message whose body
		was delimited by the connection closing."""
		if self.parser is self.bodyRest:
			yield self.produce(self.bodyRest.flush())
		elif self.parser is not self.message:
			yield HTTPProcessingStatus.BadFormat
			self.parser = self.message.reset()

	def produce(self, body: HTTPBodyBlob) -> HTTPRequest | HTTPResponse:
		line = self.line
		headers = self.head or HTTPHeaders({})
		self.parser = self.message.reset()
		self.line = None
		self.head = None
		if isinstance(line, HTTPRequestLine):
			return HTTPRequest(
				method=line.method,
				path=line.path,
				query=line.query,
				headers=headers,
				protocol=line.protocol,
				body=body,
			)
		elif isinstance(line, HTTPResponseLine):
			return HTTPResponse(
				protocol=line.protocol,
				status=line.status,
				message=line.message,
				headers=headers,
				body=body,
			)
		else:
			raise RuntimeError("Body parsed without a request or response line")


# EOF
