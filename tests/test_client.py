import asyncio
from pathlib import Path

import pytest

from conftest import body, get, write
from fsserve.client import ClientException, Target, dechunk, fetch
from fsserve.handlers import includes
from fsserve.http.model import HTTPProcessingStatus, HTTPRequest
from fsserve.server import Server


def test_target():
	assert Target.FromURL("http://example.com/a?b=1") == Target(
		"example.com", 80, False, "/a?b=1"
	)
	target = Target.FromURL("https://example.com:8443")
	assert target == Target("example.com", 8443, True, "/")
	assert target.authority == "example.com:8443"
	assert Target.FromURL("https://example.com/").authority == "example.com"


def test_target_unsupported():
	with pytest.raises(ClientException):
		Target.FromURL("ftp://example.com/file")
	with pytest.raises(ClientException):
		Target.FromURL("http:///path")


def test_dechunk():
	assert dechunk(b"4\r\nWiki\r\n5;ext=1\r\npedia\r\n0\r\n\r\n") == b"Wikipedia"
	assert dechunk(b"0\r\n\r\n") == b""
	with pytest.raises(ClientException):
		dechunk(b"4\r\nWiki\r\n")


async def serveRaw(payload: bytes, delay: float = 0.0) -> asyncio.Server:
	"""Starts a server answering every connection with the given payload."""

	async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
		await reader.readuntil(b"\r\n\r\n")
		await asyncio.sleep(delay)
		writer.write(payload)
		await writer.drain()
		writer.close()

	return await asyncio.start_server(handler, "127.0.0.1", 0)


def fetchFrom(payload: bytes, path: str = "/", delay: float = 0.0, timeout: float = 5.0):
	async def main():
		server = await serveRaw(payload, delay)
		port = server.sockets[0].getsockname()[1]
		try:
			res = await fetch(f"http://127.0.0.1:{port}{path}", timeout=timeout)
			return res, await res.read()
		finally:
			server.close()

	return asyncio.run(main())


def test_fetch_length():
	res, data = fetchFrom(b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nHello")
	assert res.status == 200
	assert data == b"Hello"


def test_fetch_chunked():
	res, data = fetchFrom(
		b"HTTP/1.1 200 OK\r\nTransfer-Encoding: chunked\r\n\r\n"
		b"5\r\nHello\r\n6\r\n World\r\n0\r\n\r\n"
	)
	assert data == b"Hello World"


def test_fetch_until_close():
	res, data = fetchFrom(b"HTTP/1.0 200 OK\r\n\r\nHello")
	assert data == b"Hello"


def test_fetch_timeout():
	with pytest.raises(ClientException) as info:
		fetchFrom(b"HTTP/1.1 200 OK\r\n\r\n", delay=1.0, timeout=0.1)
	assert info.value.status is HTTPProcessingStatus.Timeout


def test_fetch_served(site: Path):
	async def main():
		server = Server(site, extensions=["html"], log=None)
		bound = await server.listen(0, "127.0.0.1")
		try:
			res = await fetch(f"http://127.0.0.1:{bound.port}/about")
			return res.status, await res.read(), res.getHeader("ETag")
		finally:
			await server.close()

	status, data, etag = asyncio.run(main())
	assert status == 200
	assert data == b"About"
	assert etag


def test_include_url(site: Path):
	async def main():
		remote = Server(site, extensions=["html"], log=None)
		bound = await remote.listen(0, "127.0.0.1")
		try:
			local = Server(
				write(
					site.parent / "local",
					{
						"page.shtml": (
							f'[<!--#include url="http://127.0.0.1:{bound.port}/about"-->]'
						),
					},
				),
				ssi={"shtml": includes(timeout=2.0)},
				log=None,
			)
			page = await local.serve(HTTPRequest.Create("/page.shtml"))
			return await page.read()
		finally:
			await remote.close()

	assert asyncio.run(main()) == b"[About]"


def test_include_url_relative(site: Path):
	async def main():
		server = Server(
			site, extensions=["html"], ssi={"shtml": includes(timeout=2.0)}, log=None
		)
		write(site, {"remote.shtml": '[<!--#include url="about"-->]'})
		bound = await server.listen(0, "127.0.0.1")
		try:
			res = await fetch(f"http://127.0.0.1:{bound.port}/remote.shtml")
			return await res.read()
		finally:
			await server.close()

	assert asyncio.run(main()) == b"[About]"


def test_include_url_failure(tmp_path: Path):
	write(tmp_path, {"page.shtml": '<!--#include url="ftp://example.com/x"-->'})
	server = Server(tmp_path, ssi={"shtml": includes()}, log=None)
	res = get(server, "/page.shtml")
	assert res.status == 500
	assert body(res) == b""


# EOF
