import asyncio
from pathlib import Path

import pytest

from conftest import write
from fsserve.handlers import IncludeFile, IncludeURL, IncludeVirtual, includes
from fsserve.ssi import (
	DIRECTIVE,
	Directive,
	Handler,
	IncludeDepthError,
	IncludeError,
	SSIContext,
	parseParameters,
	process,
	substitute,
)


def context(root: Path, path: str = "page.shtml", **changes) -> SSIContext:
	return SSIContext(
		url=f"/{path}", headers={}, path=root / path, root=root, **changes
	)


def render(root: Path, path: str, handlers=None, **changes) -> str:
	return asyncio.run(
		process(
			root / path,
			context(root, path, **changes),
			[IncludeFile()] if handlers is None else handlers,
		)
	)


class Echo(Handler):
	"""Replaces `<!--#echo var="x"-->` with the value of `x`, after a delay."""

	def __init__(self, values: dict[str, str], delays: dict[str, float] | None = None):
		self.values = values
		self.delays = delays or {}
		self.calls: list[str] = []

	async def tryHandle(self, context: SSIContext, directive: Directive) -> str | None:
		if directive.command != "echo" or (name := directive.param("var")) is None:
			return None
		self.calls.append(name)
		await asyncio.sleep(self.delays.get(name, 0.0))
		return self.values.get(name)


# -----------------------------------------------------------------------------
# PARAMETERS
# -----------------------------------------------------------------------------


def test_parameters():
	assert parseParameters('file="a.html"') == {"file": "a.html"}
	assert parseParameters(' a="1"  b="2 3" ') == {"a": "1", "b": "2 3"}
	assert parseParameters('a="" b') == {"a": "", "b": None}
	assert parseParameters("") == {}
	assert parseParameters("   ") == {}


def test_parameters_duplicates():
	params = parseParameters('a="1" b a="2"')
	assert params == {"a": "2", "b": None}
	assert list(params) == ["a", "b"]


def test_parameters_malformed():
	assert parseParameters("a=1") == {}
	assert parseParameters('a="1"b="2"') == {}
	assert parseParameters('a="1') == {}
	assert parseParameters('="1"') == {}


def test_directive():
	directive = Directive.FromMatch(
		DIRECTIVE.search(
			'x<!--#include file="a.html" -->y'
		)
	)
	assert directive.command == "include"
	assert directive.param("file") == "a.html"
	assert directive.param("virtual") is None
	assert directive.text == '<!--#include file="a.html" -->'


# -----------------------------------------------------------------------------
# SUBSTITUTION
# -----------------------------------------------------------------------------


def test_no_directive(tmp_path: Path):
	text = "<html>\r\n<!-- a comment -->\n<p>Hi</p></html>\r\n"
	assert asyncio.run(substitute(text, context(tmp_path))) == text


def test_unhandled_directives(tmp_path: Path):
	text = 'a<!--#echo var="x"--> b <!--#include nothing="1"-->c'
	echo = Echo({})
	assert (
		asyncio.run(substitute(text, context(tmp_path, handlers=(IncludeFile(), echo))))
		== text
	)
	assert echo.calls == ["x"]


def test_handler_chain(tmp_path: Path):
	first = Echo({"a": "first"})
	second = Echo({"a": "second", "b": "second"})
	text = '<!--#echo var="a"-->/<!--#echo var="b"-->'
	assert (
		asyncio.run(substitute(text, context(tmp_path, handlers=(first, second))))
		== "first/second"
	)
	assert first.calls == ["a", "b"]
	assert second.calls == ["b"]


def test_order_is_preserved(tmp_path: Path):
	echo = Echo(
		{"a": "A", "b": "B", "c": "C"}, delays={"a": 0.06, "b": 0.0, "c": 0.03}
	)
	text = '1<!--#echo var="a"-->2<!--#echo var="b"-->3<!--#echo var="c"-->4'
	assert (
		asyncio.run(substitute(text, context(tmp_path, handlers=(echo,))))
		== "1A2B3C4"
	)


def test_directives_run_concurrently(tmp_path: Path):
	echo = Echo({"a": "A", "b": "B"}, delays={"a": 0.2, "b": 0.2})
	text = '<!--#echo var="a"--><!--#echo var="b"-->'

	async def main() -> float:
		loop = asyncio.get_running_loop()
		started = loop.time()
		assert await substitute(text, context(tmp_path, handlers=(echo,))) == "AB"
		return loop.time() - started

	assert asyncio.run(main()) < 0.35


def test_failure_propagates(tmp_path: Path):
	class Failing(Handler):
		async def tryHandle(self, context, directive):
			raise RuntimeError("Failing")

	with pytest.raises(RuntimeError):
		asyncio.run(substitute("<!--#x y-->", context(tmp_path, handlers=(Failing(),))))


def test_multiline_directive(tmp_path: Path):
	write(tmp_path, {"a.html": "A"})
	assert (
		asyncio.run(
			substitute(
				'[<!--#include\nfile="a.html"\n-->]',
				context(tmp_path, handlers=(IncludeFile(),)),
			)
		)
		== "[A]"
	)


def test_directive_boundaries(tmp_path: Path):
	write(tmp_path, {"a.html": "A"})
	ctx = context(tmp_path, handlers=(IncludeFile(),))
	# A directive without parameters is not one, and does not hide the next
	text = '<!--#foo-->x <!--#include file="a.html"-->'
	assert asyncio.run(substitute(text, ctx)) == "<!--#foo-->x A"
	# An unterminated marker does not extend into the next comment
	text = '<!--#stray text\n<p>Hi</p>\n<!--#include file="a.html"-->'
	assert asyncio.run(substitute(text, ctx)) == "<!--#stray text\n<p>Hi</p>\nA"


def test_invalid_utf8(tmp_path: Path):
	write(
		tmp_path,
		{"page.shtml": b'caf\xe9 <!--#include file="a.html"-->', "a.html": "A"},
	)
	assert render(tmp_path, "page.shtml") == "caf\ufffd A"


# -----------------------------------------------------------------------------
# INCLUDE FILE
# -----------------------------------------------------------------------------


def test_include_file(tmp_path: Path):
	write(
		tmp_path,
		{
			"page.shtml": 'A<!--#include file="b.shtml"-->Z',
			"b.shtml": 'B<!--#include file="sub/c.shtml"-->',
			"sub/c.shtml": 'C<!--#include file="d.txt"-->',
			"sub/d.txt": "D",
		},
	)
	assert render(tmp_path, "page.shtml") == "ABCDZ"


def test_include_file_preserves_content(tmp_path: Path):
	write(
		tmp_path,
		{
			"page.shtml": 'é\r\n<!--#include file="b.txt"-->\r\n',
			"b.txt": "line\r\nline\n",
		},
	)
	assert render(tmp_path, "page.shtml") == "é\r\nline\r\nline\n\r\n"


def test_include_file_encoded_name(tmp_path: Path):
	write(tmp_path, {"page.shtml": '<!--#include file="a%20b.txt"-->', "a b.txt": "AB"})
	assert render(tmp_path, "page.shtml") == "AB"


def test_include_file_missing(tmp_path: Path):
	write(tmp_path, {"page.shtml": '<!--#include file="missing.txt"-->'})
	with pytest.raises(FileNotFoundError):
		render(tmp_path, "page.shtml")


def test_include_file_outside_root(tmp_path: Path):
	root = write(tmp_path / "root", {"page.shtml": '<!--#include file="../x.txt"-->'})
	write(tmp_path, {"x.txt": "X"})
	with pytest.raises(IncludeError):
		render(root, "page.shtml")


def test_include_depth(tmp_path: Path):
	write(tmp_path, {"page.shtml": '<!--#include file="page.shtml"-->'})
	with pytest.raises(IncludeDepthError) as info:
		render(tmp_path, "page.shtml", limit=3)
	assert info.value.depth == 4


def test_include_same_file_twice(tmp_path: Path):
	write(
		tmp_path,
		{
			"page.shtml": '<!--#include file="a.txt"-->-<!--#include file="a.txt"-->',
			"a.txt": "A",
		},
	)
	assert render(tmp_path, "page.shtml") == "A-A"


# -----------------------------------------------------------------------------
# CHAIN
# -----------------------------------------------------------------------------


def test_includes():
	handlers = includes(timeout=1.5)
	assert [type(_) for _ in handlers] == [IncludeFile, IncludeVirtual, IncludeURL]
	assert handlers[2].timeout == 1.5


def test_virtual_without_server(tmp_path: Path):
	write(tmp_path, {"page.shtml": '<!--#include virtual="/a.html"-->'})
	assert render(tmp_path, "page.shtml", includes()) == '<!--#include virtual="/a.html"-->'


def test_url_base(tmp_path: Path):
	handler = IncludeURL()
	ctx = SSIContext(
		url="/blog/page.shtml",
		headers={"Host": "example.com:8080"},
		path=tmp_path / "page.shtml",
		root=tmp_path,
	)
	assert handler.base(ctx) == "http://example.com:8080/blog/page.shtml"
	ctx = SSIContext(
		url="/", headers={}, path=tmp_path / "page.shtml", root=tmp_path, secure=True
	)
	assert handler.base(ctx) == "https://localhost/"


# EOF
