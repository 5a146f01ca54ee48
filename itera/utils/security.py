from fastapi import Request


def get_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """
    Extracts the client's IP address from the request.
    Behind a hosting proxy (e.g. Render) the client IP is the first entry of
    the 'x-forwarded-for' header; otherwise the socket peer is used.
    """
    if trust_proxy_headers:
        x_forwarded_for = request.headers.get("x-forwarded-for")
        if x_forwarded_for:
            # The first IP is the client's IP
            return x_forwarded_for.split(',')[0].strip()

    # Fallback to direct client host
    return request.client.host if request.client else "unknown_ip"
