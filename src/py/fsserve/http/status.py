HTTP_STATUS: dict[int, str] = {
	200: "OK",
	204: "No Content",
	301: "Moved Permanently",
	302: "Found",
	304: "Not Modified",
	400: "Bad Request",
	403: "Forbidden",
	404: "Not Found",
	405: "Method Not Allowed",
	500: "Internal Server Error",
	502: "Bad Gateway",
	503: "Service Unavailable",
}

# Statuses for which a response never carries a body
HTTP_NO_BODY: frozenset[int] = frozenset((204, 304))

# EOF
