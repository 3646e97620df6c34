import asyncio
import socket
import ssl
import threading
from pathlib import Path
from signal import SIGINT, SIGTERM
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, NamedTuple, Sequence

from . import ssi
from .config import HOST, LOG_REQUESTS, MAX_AGE, PORT
from .http.model import HTTPBodyWriter, HTTPRequest, HTTPResponse
from .http.parser import HTTPParser
from .listing import listing
from .resolver import NodeKind, Outcome, resolve, segments
from .responses import fileResponse, notFound, redirect, serverError, ssiResponse
from .ssi import MAX_INCLUDE_DEPTH, Handler, SSIContext
from .utils.logging import debug, error, event, exception, info, logged, warning

# Called with the request URL, the response status and the diagnostic
TLog = Callable[[str, int, str], None]


def defaultLog(url: str, status: int, diagnostic: str) -> None:
	if LOG_REQUESTS:
		event("Request", url, Status=status, Result=diagnostic or None)


class ServerConfig(NamedTuple):
	"""The configuration of a server, which does not change once the server
	is created."""

	root: Path
	directoryList: bool = False
	# Maps file extensions to the handlers of their SSI directives. Files
	# with other extensions are served as-is.
	ssi: Mapping[str, Sequence[Handler]] = MappingProxyType({})
	maxAge: int = MAX_AGE
	# Extensions tried, in order, when a path segment does not exist
	extensions: tuple[str, ...] = ()
	log: TLog | None = defaultLog
	maxIncludeDepth: int = MAX_INCLUDE_DEPTH


class ListenOptions(NamedTuple):
	# Giving a certificate (and its key) serves over TLS
	cert: str | Path | None = None
	key: str | Path | None = None
	backlog: int = 1_000
	# Idle time after which a keep-alive connection is closed
	keepalive: float = 5.0
	readsize: int = 64_000

	def sslContext(self) -> ssl.SSLContext | None:
		if self.cert is None:
			if self.key is not None:
				raise ValueError("A TLS key was given without a certificate")
			return None
		context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
		context.load_cert_chain(certfile=self.cert, keyfile=self.key)
		return context


class BoundAddress(NamedTuple):
	address: str
	port: int
	family: str


class StreamBodyWriter(HTTPBodyWriter):
	"""Writes responses to an asyncio stream."""

	def __init__(self, writer: asyncio.StreamWriter) -> None:
		super().__init__()
		self.writer: asyncio.StreamWriter = writer

	async def _writeBytes(self, chunk: bytes) -> bool:
		if chunk:
			self.writer.write(chunk)
			await self.writer.drain()
		return True


class Server:
	"""Serves the files of a root directory, with extension fallback,
	index documents, directory listings and server-side includes."""

	def __init__(
		self,
		root: str | Path,
		*,
		directoryList: bool = False,
		ssi: Mapping[str, Iterable[Handler]] | None = None,
		maxAge: int = MAX_AGE,
		extensions: Iterable[str] = (),
		log: TLog | None = defaultLog,
		maxIncludeDepth: int = MAX_INCLUDE_DEPTH,
	):
		self.config: ServerConfig = ServerConfig(
			root=Path(root).absolute(),
			directoryList=directoryList,
			ssi=MappingProxyType(
				{k.lstrip(".").lower(): tuple(v) for k, v in (ssi or {}).items()}
			),
			maxAge=maxAge,
			extensions=tuple(_.lstrip(".") for _ in extensions),
			log=log,
			maxIncludeDepth=maxIncludeDepth,
		)
		self.options: ListenOptions = ListenOptions()
		self.server: asyncio.Server | None = None
		self.isSecure: bool = False

	# =========================================================================
	# REQUEST PROCESSING
	# =========================================================================

	async def serve(self, request: HTTPRequest) -> HTTPResponse:
		"""Processes the request, turning any failure into an empty 500
		response, and logs the outcome."""
		try:
			res = await self.process(request)
		except Exception as e:
			exception(e, f"Request processing error for {request.url}")
			res = serverError()
		if self.config.log:
			self.config.log(request.url, res.status, res.diagnostic)
		return res

	async def process(self, request: HTTPRequest, depth: int = 0) -> HTTPResponse:
		"""Processes the request. This is also the entry point of sub-requests
		made by virtual includes, which give their include `depth`."""
		config = self.config
		result = await resolve(
			config.root,
			segments(request.path),
			extensions=config.extensions,
			directoryList=config.directoryList,
		)
		if result is Outcome.Redirect:
			return redirect(f"{request.path}/")
		elif result is Outcome.NotFound:
			return notFound()
		elif result.kind is NodeKind.Directory:
			return await listing(result.path)
		handlers = config.ssi.get(result.extension)
		if handlers is None:
			return fileResponse(request.headers, result, config.maxAge)
		text = await ssi.process(
			result.path,
			SSIContext(
				url=request.url,
				headers=request.headers,
				path=result.path,
				root=config.root,
				server=self,
				depth=depth,
				limit=config.maxIncludeDepth,
				secure=self.isSecure,
			),
			handlers,
		)
		return ssiResponse(text, result, config.maxAge)

	# =========================================================================
	# TRANSPORT
	# =========================================================================

	async def onConnection(
		self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
	) -> None:
		"""Processes the requests sent over one connection, until the client
		closes it, asks for it to be closed or stays idle for too long."""
		options = self.options
		parser = HTTPParser()
		out = StreamBodyWriter(writer)
		keep_alive: bool = True
		try:
			while keep_alive:
				try:
					chunk = await asyncio.wait_for(
						reader.read(options.readsize), timeout=options.keepalive
					)
				except TimeoutError:
					break
				if not chunk:
					break
				try:
					atoms = list(parser.feed(chunk))
				except ValueError as e:
					error("Malformed request", 400, Error=str(e))
					res = HTTPResponse.Create(status=400, headers={"Connection": "close"})
					await out.write(res.head())
					break
				for atom in atoms:
					if not isinstance(atom, HTTPRequest):
						continue
					connection = (atom.header("Connection") or "").lower()
					if atom.protocol == "HTTP/1.0" or connection == "close":
						keep_alive = False
					res = await self.serve(atom)
					if not keep_alive:
						res.setHeader("Connection", "close")
					await out.write(res.head())
					if atom.method != "HEAD":
						await out.write(res.body)
					if not keep_alive:
						break
		except ConnectionError as e:
			logged(debug) and debug("Client disconnected", Error=str(e))
		except Exception as e:
			exception(e, "Connection processing error")
		finally:
			writer.close()
			try:
				await writer.wait_closed()
			except ConnectionError:
				pass

	async def listen(
		self,
		port: int = PORT,
		host: str = HOST,
		options: ListenOptions | None = None,
	) -> BoundAddress:
		"""Starts accepting connections, returning the address the server is
		bound to once it does."""
		if self.server is not None:
			raise RuntimeError("Server is already listening")
		self.options = options or ListenOptions()
		context = self.options.sslContext()
		self.isSecure = context is not None
		self.server = await asyncio.start_server(
			self.onConnection,
			host=host,
			port=port,
			ssl=context,
			backlog=self.options.backlog,
		)
		sock = self.server.sockets[0]
		name = sock.getsockname()
		bound = BoundAddress(
			address=name[0],
			port=name[1],
			family="IPv6" if sock.family == socket.AF_INET6 else "IPv4",
		)
		info(
			"fs-serve listening",
			icon="🚀",
			Host=bound.address,
			Port=bound.port,
			TLS=self.isSecure,
			Root=str(self.config.root),
		)
		return bound

	async def close(self) -> None:
		if self.server is None:
			return
		server, self.server = self.server, None
		server.close()
		await server.wait_closed()

	def __repr__(self) -> str:
		return f"(Server {self.config.root}{' :listening' if self.server else ''})"


def run(
	root: str | Path,
	*,
	port: int | None = None,
	host: str = HOST,
	options: ListenOptions | None = None,
	**config,
) -> None:
	"""High level function to run the server until it is interrupted. When
	no port is given and the default one is taken, any available port is
	used."""
	server = Server(root, **config)

	async def main() -> None:
		try:
			bound = await server.listen(PORT if port is None else port, host, options)
		except OSError:
			if port is not None:
				raise
			warning(f"Could not bind to {host}:{PORT}, using any available port.")
			bound = await server.listen(0, host, options)
		scheme = "https" if server.isSecure else "http"
		event("Started", f"{scheme}://{bound.address}:{bound.port}/")
		stopped = asyncio.Event()
		if threading.current_thread() is threading.main_thread():
			loop = asyncio.get_running_loop()
			loop.add_signal_handler(SIGINT, stopped.set)
			loop.add_signal_handler(SIGTERM, stopped.set)
		try:
			await stopped.wait()
		finally:
			info("Server stopping…")
			await server.close()

	try:
		asyncio.run(main())
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
