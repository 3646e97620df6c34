import asyncio
import sys
from pathlib import Path

import pytest

# Makes the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "py"))

from fsserve.handlers import includes  # noqa: E402
from fsserve.http.model import HTTPRequest, HTTPResponse  # noqa: E402
from fsserve.server import Server  # noqa: E402


def write(root: Path, files: dict[str, str | bytes]) -> Path:
	"""Creates the given files under `root`, a name ending with `/` creates
	an empty directory."""
	for name, content in files.items():
		path = root / name
		if name.endswith("/"):
			path.mkdir(parents=True, exist_ok=True)
			continue
		path.parent.mkdir(parents=True, exist_ok=True)
		if isinstance(content, bytes):
			path.write_bytes(content)
		else:
			path.write_text(content, encoding="utf8", newline="")
	return root


def get(
	server: Server, path: str, headers: dict[str, str] | None = None, query: str = ""
) -> HTTPResponse:
	return asyncio.run(
		server.serve(HTTPRequest.Create(path, headers=headers, query=query))
	)


def body(res: HTTPResponse) -> bytes:
	return asyncio.run(res.read())


@pytest.fixture
def site(tmp_path: Path) -> Path:
	"""A small site with a fallback page, a nested directory and includes."""
	return write(
		tmp_path / "site",
		{
			"index.html": "<h1>Home</h1>",
			"about.html": "About",
			"style.css": "body{}",
			"docs/": "",
			"docs/guide.html": "Guide",
			"blog/index.shtml": 'Blog<!--#include file="../parts/footer.html"-->',
			"parts/footer.html": "Footer",
			"parts/nav.shtml": '<nav><!--#include file="links.html"--></nav>',
			"parts/links.html": "Links",
			"page.shtml": 'A<!--#include virtual="parts/nav"-->Z',
		},
	)


@pytest.fixture
def requests() -> list[tuple[str, int, str]]:
	return []


@pytest.fixture
def server(site: Path, requests: list[tuple[str, int, str]]) -> Server:
	return Server(
		site,
		extensions=["html", "shtml"],
		ssi={"shtml": includes(timeout=2.0)},
		log=lambda url, status, diagnostic: requests.append((url, status, diagnostic)),
	)


# EOF
