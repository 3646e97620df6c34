import argparse
import sys

from .config import EXTENSIONS, HOST, MAX_AGE, SSI_EXTENSIONS
from .handlers import includes
from .server import ListenOptions, run


def main(args: list[str] | None = None) -> None:
	parser = argparse.ArgumentParser(
		prog="fs-serve",
		description="Serves a directory over HTTP, with server-side includes",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	parser.add_argument(
		"directory",
		nargs="?",
		default=".",
		help="The directory to serve",
	)
	parser.add_argument(
		"port",
		nargs="?",
		type=int,
		default=None,
		help="The port to listen on, any available port when the default one is taken",
	)
	parser.add_argument(
		"host",
		nargs="?",
		default=HOST,
		help="The host to listen on",
	)
	parser.add_argument(
		"--no-list",
		action="store_false",
		dest="directoryList",
		help="Disables the listing of directories without an index document",
	)
	parser.add_argument(
		"--max-age",
		action="store",
		dest="maxAge",
		type=int,
		default=MAX_AGE,
		help="Value of the Cache-Control max-age, in seconds",
	)
	parser.add_argument(
		"-e",
		"--extension",
		action="append",
		dest="extensions",
		metavar="EXT",
		help=f"Fallback extension (can be repeated, defaults to {','.join(EXTENSIONS)})",
	)
	parser.add_argument(
		"-s",
		"--ssi",
		action="append",
		dest="ssi",
		metavar="EXT",
		help=f"Extension processed for includes (can be repeated, defaults to {','.join(SSI_EXTENSIONS)})",
	)
	parser.add_argument("--cert", action="store", help="TLS certificate file")
	parser.add_argument("--key", action="store", help="TLS key file")

	options = parser.parse_args(args=args)
	handlers = includes()
	run(
		options.directory,
		port=options.port,
		host=options.host,
		options=ListenOptions(cert=options.cert, key=options.key),
		directoryList=options.directoryList,
		maxAge=options.maxAge,
		extensions=options.extensions or EXTENSIONS,
		ssi={_: handlers for _ in options.ssi or SSI_EXTENSIONS},
	)


if __name__ == "__main__":
	main(sys.argv[1:])

# EOF
