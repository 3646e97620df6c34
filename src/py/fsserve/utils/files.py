import mimetypes
from pathlib import Path

mimetypes.init()

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"

# Takes precedence over the platform's `mimetypes` database, which varies
# across systems.
MIME_TYPES: dict[str, str] = {
	"shtml": "text/html",
	"html": "text/html",
	"htm": "text/html",
	"css": "text/css",
	"csv": "text/csv",
	"ics": "text/calendar",
	"js": "text/javascript",
	"mjs": "text/javascript",
	"md": "text/markdown",
	"txt": "text/plain",
	"xml": "text/xml",
	"json": "application/json",
	"jsonld": "application/ld+json",
	"xhtml": "application/xhtml+xml",
	"pdf": "application/pdf",
	"zip": "application/zip",
	"gz": "application/gzip",
	"bz": "application/x-bzip",
	"bz2": "application/x-bzip2",
	"tar": "application/x-tar",
	"7z": "application/x-7z-compressed",
	"rar": "application/vnd.rar",
	"wasm": "application/wasm",
	"bin": "application/octet-stream",
	"bmp": "image/bmp",
	"gif": "image/gif",
	"ico": "image/vnd.microsoft.icon",
	"jpeg": "image/jpeg",
	"jpg": "image/jpeg",
	"png": "image/png",
	"svg": "image/svg+xml",
	"tif": "image/tiff",
	"tiff": "image/tiff",
	"webp": "image/webp",
	"aac": "audio/aac",
	"mp3": "audio/mpeg",
	"oga": "audio/ogg",
	"opus": "audio/opus",
	"wav": "audio/wav",
	"weba": "audio/webm",
	"avi": "video/x-msvideo",
	"flv": "video/x-flv",
	"mp4": "video/mp4",
	"mpeg": "video/mpeg",
	"ogv": "video/ogg",
	"webm": "video/webm",
	"3gp": "video/3gpp",
	"3g2": "video/3gpp2",
	"otf": "font/otf",
	"ttf": "font/ttf",
	"woff": "font/woff",
	"woff2": "font/woff2",
	"eot": "application/vnd.ms-fontobject",
}

TEXT_CHARSET: str = "; charset=UTF-8"


def extension(path: Path | str) -> str:
	"""Returns the lowercase extension of the path, without the leading dot."""
	name = Path(path).name
	return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def contentType(path: Path | str) -> str:
	"""Guesses the content type from the given path, `text/*` types
	are suffixed with the UTF-8 charset."""
	ext = extension(path)
	res = (
		MIME_TYPES.get(ext)
		or (mimetypes.guess_type(Path(path).name)[0] if ext else None)
		or DEFAULT_CONTENT_TYPE
	)
	return f"{res}{TEXT_CHARSET}" if res.startswith("text/") else res


# EOF
